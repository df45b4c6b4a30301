# 数据库层数据模型和结果类
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .enums import ChangeType, GradeStatus
from ..exceptions import ValidationError

MIN_GRADE = 0
MAX_GRADE = 100


def is_valid_grade(grade: Any) -> bool:
    """成绩必须为 None（未完成）或 0-100 之间的整数"""
    if grade is None:
        return True
    if isinstance(grade, bool) or not isinstance(grade, int):
        return False
    return MIN_GRADE <= grade <= MAX_GRADE


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class GradeKey:
    """成绩记录唯一键"""
    academic_year: str
    class_id: str
    subject: str
    period: str
    student_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "academicYear": self.academic_year,
            "classId": self.class_id,
            "subject": self.subject,
            "period": self.period,
            "studentId": self.student_id,
        }


@dataclass
class ReviewState:
    """成绩修改申请审核中的状态，保留修改前的成绩和状态以便对比和回滚"""
    previous_grade: Optional[int]
    previous_status: GradeStatus
    previous_rejection_reason: Optional[str]
    proposed_grade: int
    reason: str
    request_id: Optional[str] = None
    requested_at: Optional[datetime] = None


@dataclass(frozen=True)
class Decided:
    """已决定（或首次提交待审）的成绩值"""
    grade: Optional[int]
    status: GradeStatus


@dataclass(frozen=True)
class UnderReview:
    """修改申请审核中的成绩值"""
    current_grade: Optional[int]
    proposed_grade: int
    reason: str


GradeValue = Union[Decided, UnderReview]


@dataclass
class GradeRecord:
    """单条成绩记录"""
    academic_year: str
    class_id: str
    subject: str
    period: str
    student_id: str
    teacher_id: str
    student_name: str
    submission_id: str
    grade: Optional[int] = None
    status: GradeStatus = GradeStatus.PENDING
    rejection_reason: Optional[str] = None
    submitted_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    review: Optional[ReviewState] = None
    version: int = 0

    @property
    def key(self) -> GradeKey:
        return GradeKey(
            academic_year=self.academic_year,
            class_id=self.class_id,
            subject=self.subject,
            period=self.period,
            student_id=self.student_id,
        )

    @property
    def is_under_review(self) -> bool:
        return self.review is not None

    @property
    def value(self) -> GradeValue:
        if self.review is not None:
            return UnderReview(
                current_grade=self.review.previous_grade,
                proposed_grade=self.review.proposed_grade,
                reason=self.review.reason,
            )
        return Decided(grade=self.grade, status=self.status)

    def check_invariants(self) -> None:
        """写入前校验记录不变量"""
        if not is_valid_grade(self.grade):
            raise ValidationError(f"成绩必须为空或在{MIN_GRADE}-{MAX_GRADE}之间: {self.grade!r}", field="grade")
        if self.status == GradeStatus.REJECTED and not self.rejection_reason:
            raise ValidationError("驳回状态必须提供驳回原因", field="rejectionReason")
        if self.status != GradeStatus.REJECTED and self.rejection_reason is not None:
            raise ValidationError("只有驳回状态才能设置驳回原因", field="rejectionReason")
        if self.review is not None and self.status != GradeStatus.PENDING:
            raise ValidationError("审核中的修改申请必须处于待审核状态", field="status")

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "submissionId": self.submission_id,
            "academicYear": self.academic_year,
            "period": self.period,
            "classId": self.class_id,
            "subject": self.subject,
            "teacherId": self.teacher_id,
            "studentId": self.student_id,
            "studentName": self.student_name,
            "grade": self.grade,
            "status": self.status.value,
            "rejectionReason": self.rejection_reason,
            "submittedAt": _isoformat(self.submitted_at),
            "lastUpdated": _isoformat(self.last_updated),
            "underReview": self.is_under_review,
        }
        if self.review is not None:
            result["review"] = {
                "previousGrade": self.review.previous_grade,
                "previousStatus": self.review.previous_status.value,
                "proposedGrade": self.review.proposed_grade,
                "reason": self.review.reason,
                "requestId": self.review.request_id,
                "requestedAt": _isoformat(self.review.requested_at),
            }
        return result


@dataclass
class HistoryEntry:
    """成绩历史记录（只追加）"""
    key: GradeKey
    submission_id: str
    change_type: ChangeType
    grade: Optional[int]
    status: GradeStatus
    rejection_reason: Optional[str] = None
    note: Optional[str] = None
    recorded_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.key.to_dict(),
            "submissionId": self.submission_id,
            "changeType": self.change_type.value,
            "grade": self.grade,
            "status": self.status.value,
            "rejectionReason": self.rejection_reason,
            "note": self.note,
            "recordedAt": _isoformat(self.recorded_at),
        }


@dataclass
class ChangeRequestEntry:
    """单个学生的成绩修改申请"""
    request_id: str
    batch_id: str
    submission_id: str
    key: GradeKey
    teacher_id: str
    student_name: str
    original_grade: Optional[int]
    original_status: GradeStatus
    requested_grade: int
    reason: str
    status: GradeStatus = GradeStatus.PENDING
    admin_rejection_reason: Optional[str] = None
    submitted_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "batchId": self.batch_id,
            "submissionId": self.submission_id,
            **self.key.to_dict(),
            "teacherId": self.teacher_id,
            "studentName": self.student_name,
            "originalGrade": self.original_grade,
            "originalStatus": self.original_status.value,
            "requestedGrade": self.requested_grade,
            "reasonForChange": self.reason,
            "status": self.status.value,
            "adminRejectionReason": self.admin_rejection_reason,
            "submittedAt": _isoformat(self.submitted_at),
            "resolvedAt": _isoformat(self.resolved_at),
        }


@dataclass
class GradeQuery:
    """成绩查询条件"""
    academic_year: Optional[str] = None
    class_id: Optional[str] = None
    subject: Optional[str] = None
    teacher_id: Optional[str] = None
    period: Optional[str] = None
    student_ids: Optional[List[str]] = None
    statuses: Optional[List[GradeStatus]] = None

    def matches(self, record: GradeRecord) -> bool:
        """判断记录是否满足查询条件"""
        if self.academic_year is not None and record.academic_year != self.academic_year:
            return False
        if self.class_id is not None and record.class_id != self.class_id:
            return False
        if self.subject is not None and record.subject != self.subject:
            return False
        if self.teacher_id is not None and record.teacher_id != self.teacher_id:
            return False
        if self.period is not None and record.period != self.period:
            return False
        if self.student_ids and record.student_id not in self.student_ids:
            return False
        if self.statuses and record.status not in self.statuses:
            return False
        return True


class OutcomeKind(str, Enum):
    """批量操作中单项结果"""
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ItemOutcome:
    """单项操作结果"""
    key: Optional[GradeKey]
    outcome: OutcomeKind
    status: Optional[GradeStatus] = None
    error_code: Optional[str] = None
    message: Optional[str] = None
    submission_id: Optional[str] = None
    student_id: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome != OutcomeKind.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "outcome": self.outcome.value,
            "key": self.key.to_dict() if self.key else None,
            "submissionId": self.submission_id,
            "studentId": self.student_id if self.student_id else (self.key.student_id if self.key else None),
            "status": self.status.value if self.status else None,
            "errorCode": self.error_code,
            "message": self.message,
        }


@dataclass
class BulkTransitionResult:
    """批量状态变更结果"""
    outcomes: List[ItemOutcome] = field(default_factory=list)

    def _count(self, kind: OutcomeKind) -> int:
        return sum(1 for o in self.outcomes if o.outcome == kind)

    @property
    def requested(self) -> int:
        return len(self.outcomes)

    @property
    def applied(self) -> int:
        return self._count(OutcomeKind.APPLIED)

    @property
    def unchanged(self) -> int:
        return self._count(OutcomeKind.UNCHANGED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeKind.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeKind.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requested": self.requested,
            "applied": self.applied,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": [o.to_dict() for o in self.outcomes],
        }
