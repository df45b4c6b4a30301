# API响应模型
from typing import Any, Optional

from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    """统一成功响应"""
    success: bool = Field(True, description="是否成功")
    code: int = Field(200, description="状态码")
    message: str = Field("success", description="消息")
    data: Any = Field(None, description="响应数据")
    timestamp: str = Field(..., description="响应时间")


class ErrorDetail(BaseModel):
    """错误详情"""
    code: str = Field(..., description="错误代码")
    message: str = Field(..., description="错误信息")
    field: Optional[str] = Field(None, description="出错字段")


class ErrorResponse(BaseModel):
    """统一错误响应"""
    success: bool = Field(False, description="是否成功")
    error: ErrorDetail
