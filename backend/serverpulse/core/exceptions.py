"""
全局异常模块 (Global Exception Module)

定义采集、查询与数据保留各环节的异常类，以及统一的错误响应格式。
调用方可纠正的错误（如非法时间范围）与内部错误严格区分，内部错误对外只返回通用信息。

Defines the exception classes for collection, querying and retention, plus a
unified error payload format. Caller-correctable errors (such as an invalid time
range) are kept distinct from internal errors, which are reported generically.
"""
from typing import Any, Optional


# ============================================================
# 业务异常类 (Business Exception Classes)
# ============================================================

class BusinessError(Exception):
    """业务异常基类 (Base Business Exception)"""
    status_code: int = 400
    error: str = "business_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class ValidationError(BusinessError):
    """数据校验失败 (Validation Error)"""
    status_code = 422
    error = "validation_error"


class InvalidRangeError(ValidationError):
    """非法的命名时间范围或自定义起止时间 (Invalid Named Range or Custom Bounds)"""
    status_code = 400
    error = "invalid_range"


class ParseError(BusinessError):
    """
    指标解析失败 (Metric Parse Failure)

    source 标明出错的指标来源（cpu/ram/disk/io/network）。
    """
    status_code = 502
    error = "parse_error"

    def __init__(self, source: str, message: str, detail: Optional[str] = None):
        self.source = source
        super().__init__(f"[{source}] {message}", detail)


class AggregationError(BusinessError):
    """查询层内部错误，对外只暴露通用信息 (Internal Query-layer Failure)"""
    status_code = 500
    error = "internal_server_error"


class RetentionError(BusinessError):
    """
    数据清理中途失败 (Retention Sweep Failed Mid-run)

    已提交的批次不会回滚，total_deleted / batch_count 记录失败前的进度。
    """
    status_code = 500
    error = "retention_error"

    def __init__(self, message: str, total_deleted: int, batch_count: int, detail: Optional[str] = None):
        self.total_deleted = total_deleted
        self.batch_count = batch_count
        super().__init__(message, detail)


class RemoteConnectionError(ConnectionError):
    """
    重试耗尽后仍无法完成采集 (Collection Failed After All Retries)

    通过 __cause__ 链接最后一次失败的底层异常。
    """

    def __init__(self, host: str, port: int, attempts: int, message: str):
        self.host = host
        self.port = port
        self.attempts = attempts
        super().__init__(message)


# ============================================================
# 统一错误格式 (Unified Error Payload)
# ============================================================

def error_payload(exc: Exception) -> dict[str, Any]:
    """
    将异常转换为结构化错误字典 (Render an exception as a structured error dict)

    处理优先级：
    1. BusinessError 子类 → 对应状态码 + 业务信息
    2. RemoteConnectionError → 503，信息可对外展示
    3. 其他异常 → 500 + 通用信息，不泄露内部细节
    """
    if isinstance(exc, BusinessError):
        return {
            "error": exc.error,
            "message": exc.message,
            "detail": exc.detail,
            "status_code": exc.status_code,
        }
    if isinstance(exc, RemoteConnectionError):
        return {
            "error": "connection_error",
            "message": str(exc),
            "detail": None,
            "status_code": 503,
        }
    return {
        "error": "internal_server_error",
        "message": "Internal server error",
        "detail": None,
        "status_code": 500,
    }
