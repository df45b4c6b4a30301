# API请求模型
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GradeEntryRequest(BaseModel):
    """单个学生成绩"""
    model_config = ConfigDict(populate_by_name=True)

    student_id: str = Field(..., alias="studentId", description="学生ID")
    name: str = Field(..., description="学生姓名")
    grade: Optional[int] = Field(None, description="成绩（0-100），为空表示未完成")
    period: str = Field(..., description="评分周期，例如 firstPeriod")


class GradeSubmissionRequest(BaseModel):
    """教师提交成绩请求模型"""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "teacherId": "T001",
                "classId": "grade-7a",
                "subject": "Mathematics",
                "grades": [
                    {"studentId": "S001", "name": "Alice", "grade": 80, "period": "firstPeriod"},
                    {"studentId": "S002", "name": "Bob", "grade": None, "period": "firstPeriod"}
                ]
            }
        }
    )

    teacher_id: str = Field(..., alias="teacherId", description="教师ID")
    class_id: str = Field(..., alias="classId", description="班级ID")
    subject: str = Field(..., description="科目")
    grades: List[GradeEntryRequest] = Field(..., description="学生成绩列表")
    academic_year: Optional[str] = Field(None, alias="academicYear", description="学年，缺省为当前学年")
    resubmit: bool = Field(False, description="是否重新提交已驳回的成绩")

    @field_validator("teacher_id", "class_id", "subject")
    @classmethod
    def strip_identifiers(cls, v: str) -> str:
        return v.strip()


class StatusUpdateItem(BaseModel):
    """单项成绩状态更新"""
    model_config = ConfigDict(populate_by_name=True)

    submission_id: str = Field(..., alias="submissionId", description="提交ID")
    student_id: str = Field(..., alias="studentId", description="学生ID")
    status: str = Field(..., description="目标状态：Approved 或 Rejected")
    rejection_reason: Optional[str] = Field(None, alias="rejectionReason", description="驳回原因（驳回时必填）")
    period: Optional[str] = Field(None, description="周期（提交包含多个周期时可指定）")


class GradeChangeItem(BaseModel):
    """单个学生的成绩修改"""
    model_config = ConfigDict(populate_by_name=True)

    student_id: str = Field(..., alias="studentId", description="学生ID")
    new_grade: int = Field(..., alias="newGrade", description="新成绩（0-100）")


class GradeChangeRequestCreate(BaseModel):
    """成绩修改申请请求模型"""
    model_config = ConfigDict(populate_by_name=True)

    submission_id: str = Field(..., alias="submissionId", description="提交ID")
    reason: str = Field(..., description="修改原因")
    changes: List[GradeChangeItem] = Field(..., description="成绩修改列表")
    period: Optional[str] = Field(None, description="周期（提交包含多个周期时必填）")
    teacher_id: Optional[str] = Field(None, alias="teacherId", description="申请教师ID")


class GradeChangeRequestResolve(BaseModel):
    """管理员审核成绩修改申请请求模型"""
    model_config = ConfigDict(populate_by_name=True)

    request_ids: List[str] = Field(..., alias="requestIds", description="修改申请ID列表")
    status: str = Field(..., description="审核结果：Approved 或 Rejected")
    admin_rejection_reason: Optional[str] = Field(
        None, alias="adminRejectionReason", description="驳回原因（驳回时必填）"
    )
