# 成绩提交服务
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from ..calculation.calculators.period_stats_calculator import PeriodStats, PeriodStatsCalculator
from ..database.enums import PERIOD_ORDER, ChangeType, GradeStatus, SubmissionStatus
from ..database.repositories import GradeStore
from ..database.schemas import GradeKey, GradeRecord, HistoryEntry, is_valid_grade, MIN_GRADE, MAX_GRADE
from ..exceptions import InvalidTransition, ValidationError
from ..utils.academic_year import current_academic_year
from .approval_service import derive_submission_status

logger = logging.getLogger(__name__)


@dataclass
class GradeEntry:
    """教师提交的单个学生成绩"""
    student_id: str
    name: str
    grade: Optional[int]
    period: str


@dataclass
class Submission:
    """提交批次（派生聚合，不持久化）：同一 submissionId 下的所有成绩记录"""
    submission_id: str
    academic_year: str
    class_id: str
    subject: str
    teacher_id: str
    records: List[GradeRecord] = field(default_factory=list)

    @property
    def status(self) -> SubmissionStatus:
        # 每次读取时重新派生
        return derive_submission_status(r.status for r in self.records)

    @property
    def periods(self) -> List[str]:
        present = {r.period for r in self.records}
        return [p for p in PERIOD_ORDER if p in present]

    @property
    def period(self) -> Optional[str]:
        periods = self.periods
        return periods[0] if len(periods) == 1 else None

    @property
    def submitted_at(self) -> Optional[datetime]:
        values = [r.submitted_at for r in self.records if r.submitted_at]
        return min(values) if values else None

    @property
    def last_updated(self) -> Optional[datetime]:
        values = [r.last_updated for r in self.records if r.last_updated]
        return max(values) if values else None

    def count(self, status: GradeStatus) -> int:
        return sum(1 for r in self.records if r.status == status)

    def stats(self, calculator: Optional[PeriodStatsCalculator] = None) -> PeriodStats:
        calculator = calculator or PeriodStatsCalculator()
        return calculator.calculate_for_records(self.records)

    def to_dict(self, calculator: Optional[PeriodStatsCalculator] = None) -> Dict[str, Any]:
        return {
            "submissionId": self.submission_id,
            "academicYear": self.academic_year,
            "classId": self.class_id,
            "subject": self.subject,
            "teacherId": self.teacher_id,
            "period": self.period,
            "periods": self.periods,
            "status": self.status.value,
            "totalStudents": len(self.records),
            "pendingCount": self.count(GradeStatus.PENDING),
            "approvedCount": self.count(GradeStatus.APPROVED),
            "rejectedCount": self.count(GradeStatus.REJECTED),
            "submittedAt": self.submitted_at.isoformat() if self.submitted_at else None,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
            "stats": self.stats(calculator).to_dict(),
            "students": [
                {
                    "studentId": r.student_id,
                    "studentName": r.student_name,
                    "period": r.period,
                    "grade": r.grade,
                    "status": r.status.value,
                    "rejectionReason": r.rejection_reason,
                    "underReview": r.is_under_review,
                }
                for r in self.records
            ],
        }


class SubmissionGrouper:
    """按 submissionId 对成绩记录分组（同一班级/科目/周期可能有多次提交）"""

    def __init__(self, stats_calculator: Optional[PeriodStatsCalculator] = None):
        self.stats_calculator = stats_calculator or PeriodStatsCalculator()

    def group(self, records: Iterable[GradeRecord]) -> Dict[str, Submission]:
        submissions: Dict[str, Submission] = {}
        for record in records:
            submission = submissions.get(record.submission_id)
            if submission is None:
                submission = Submission(
                    submission_id=record.submission_id,
                    academic_year=record.academic_year,
                    class_id=record.class_id,
                    subject=record.subject,
                    teacher_id=record.teacher_id,
                )
                submissions[record.submission_id] = submission
            submission.records.append(record)
        return submissions

    def group_with_stats(self, records: Iterable[GradeRecord]) -> Dict[str, Tuple[Submission, PeriodStats]]:
        """分组并计算每个提交的统计结果"""
        return {
            submission_id: (submission, submission.stats(self.stats_calculator))
            for submission_id, submission in self.group(records).items()
        }


def new_submission_id() -> str:
    return f"SUB-{uuid.uuid4().hex}"


class SubmissionService:
    """成绩提交服务：校验提交内容并创建 Pending 状态的成绩记录"""

    def __init__(self, store: GradeStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    def submit_grades(self, teacher_id: str, class_id: str, subject: str,
                      grades: List[GradeEntry], academic_year: Optional[str] = None,
                      resubmit: bool = False) -> Submission:
        """
        提交一批成绩

        Args:
            teacher_id: 教师ID
            class_id: 班级ID
            subject: 科目
            grades: 学生成绩列表（每个 (studentId, period) 一条）
            academic_year: 学年，缺省为当前学年
            resubmit: 是否显式重新提交已驳回的成绩

        Returns:
            新创建的提交批次

        Raises:
            ValidationError: 输入不合法，或存在已驳回成绩但未声明重新提交
            InvalidTransition: 同键已有待审核或已通过的成绩
        """
        academic_year = academic_year or current_academic_year()
        self._validate(teacher_id, class_id, subject, grades)

        # 所有检查完成后才写入
        plan: List[Tuple[GradeEntry, Optional[GradeRecord]]] = []
        for index, entry in enumerate(grades):
            key = GradeKey(academic_year, class_id, subject, entry.period, entry.student_id)
            existing = self.store.get(key)
            if existing is not None:
                if existing.status == GradeStatus.REJECTED:
                    if not resubmit:
                        raise ValidationError(
                            f"学生 {entry.student_id} 在 {entry.period} 的成绩已被驳回，需要显式重新提交",
                            field=f"grades[{index}]",
                        )
                else:
                    raise InvalidTransition(
                        f"学生 {entry.student_id} 在 {entry.period} 已有{existing.status.value}状态的成绩"
                    )
            plan.append((entry, existing))

        submission_id = new_submission_id()
        now = self.clock()
        submission = Submission(
            submission_id=submission_id,
            academic_year=academic_year,
            class_id=class_id,
            subject=subject,
            teacher_id=teacher_id,
        )

        for entry, existing in plan:
            if existing is None:
                record = self.store.insert(GradeRecord(
                    academic_year=academic_year,
                    class_id=class_id,
                    subject=subject,
                    period=entry.period,
                    student_id=entry.student_id,
                    teacher_id=teacher_id,
                    student_name=entry.name,
                    submission_id=submission_id,
                    grade=entry.grade,
                    status=GradeStatus.PENDING,
                    submitted_at=now,
                    last_updated=now,
                ))
                self.store.add_history(HistoryEntry(
                    key=record.key,
                    submission_id=submission_id,
                    change_type=ChangeType.CREATED,
                    grade=record.grade,
                    status=record.status,
                    recorded_at=now,
                ))
            else:
                # 被替代的驳回记录写入历史
                superseded = HistoryEntry(
                    key=existing.key,
                    submission_id=existing.submission_id,
                    change_type=ChangeType.RESUBMITTED,
                    grade=existing.grade,
                    status=existing.status,
                    rejection_reason=existing.rejection_reason,
                    note=f"superseded by {submission_id}",
                    recorded_at=now,
                )
                expected_version = existing.version
                existing.teacher_id = teacher_id
                existing.student_name = entry.name
                existing.submission_id = submission_id
                existing.grade = entry.grade
                existing.status = GradeStatus.PENDING
                existing.rejection_reason = None
                existing.submitted_at = now
                existing.last_updated = now
                record = self.store.update(existing, expected_version)
                self.store.add_history(superseded)
            submission.records.append(record)

        logger.info(
            f"Submission {submission_id} created: class={class_id}, subject={subject}, "
            f"teacher={teacher_id}, records={len(submission.records)}"
        )
        return submission

    def _validate(self, teacher_id: str, class_id: str, subject: str,
                  grades: List[GradeEntry]) -> None:
        if not teacher_id:
            raise ValidationError("teacherId 不能为空", field="teacherId")
        if not class_id:
            raise ValidationError("classId 不能为空", field="classId")
        if not subject:
            raise ValidationError("subject 不能为空", field="subject")
        if not grades:
            raise ValidationError("成绩列表不能为空", field="grades")

        seen = set()
        for index, entry in enumerate(grades):
            prefix = f"grades[{index}]"
            if not entry.student_id:
                raise ValidationError("studentId 不能为空", field=f"{prefix}.studentId")
            if not entry.name:
                raise ValidationError("学生姓名不能为空", field=f"{prefix}.name")
            if entry.period not in PERIOD_ORDER:
                raise ValidationError(f"无效的周期: {entry.period}", field=f"{prefix}.period")
            if not is_valid_grade(entry.grade):
                raise ValidationError(
                    f"成绩必须为空或在{MIN_GRADE}-{MAX_GRADE}之间: {entry.grade!r}",
                    field=f"{prefix}.grade",
                )
            pair = (entry.student_id, entry.period)
            if pair in seen:
                raise ValidationError(
                    f"学生 {entry.student_id} 在 {entry.period} 重复提交", field=f"{prefix}.studentId"
                )
            seen.add(pair)
