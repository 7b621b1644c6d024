"""
核心模块包 (Core Module Package)

ServerPulse 的基础设施组件：配置管理、数据库连接、异常体系。

Infrastructure components for ServerPulse: configuration management,
database connections and the exception hierarchy.
"""
