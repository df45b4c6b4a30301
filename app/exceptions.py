# 成绩引擎异常定义
from typing import Any, Dict, Optional


class GradeEngineError(Exception):
    """成绩引擎异常基类"""

    code = "GRADE_ENGINE_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        result = {"code": self.code, "message": self.message}
        if self.field is not None:
            result["field"] = self.field
        return result


class ValidationError(GradeEngineError):
    """输入数据校验失败（在任何存储写入之前抛出）"""

    code = "VALIDATION_ERROR"


class InvalidTransition(GradeEngineError):
    """违反成绩状态机的状态变更"""

    code = "INVALID_TRANSITION"


class NotFound(GradeEngineError):
    """期望存在的成绩记录不存在"""

    code = "NOT_FOUND"


class StoreUnavailable(GradeEngineError):
    """存储层暂时不可用，调用方可退避重试"""

    code = "STORE_UNAVAILABLE"


class ConcurrentModification(GradeEngineError):
    """并发写入冲突，调用方应重新读取后再做决定"""

    code = "CONCURRENT_MODIFICATION"


# API层使用的HTTP状态码映射
HTTP_STATUS_CODES = {
    ValidationError: 422,
    InvalidTransition: 409,
    NotFound: 404,
    ConcurrentModification: 409,
    StoreUnavailable: 503,
}


def http_status_for(error: GradeEngineError) -> int:
    """获取异常对应的HTTP状态码"""
    for error_type, status_code in HTTP_STATUS_CODES.items():
        if isinstance(error, error_type):
            return status_code
    return 500
