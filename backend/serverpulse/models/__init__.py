"""
数据模型包 (Data Models Package)

集中导出所有 SQLAlchemy ORM 模型。

Centrally exports all SQLAlchemy ORM models.
"""
from serverpulse.models.server_metric import ServerMetric

__all__ = ["ServerMetric"]
