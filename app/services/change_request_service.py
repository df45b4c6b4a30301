# 成绩修改申请服务
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..database.enums import ChangeType, GradeStatus
from ..database.repositories import GradeStore
from ..database.schemas import (
    BulkTransitionResult, ChangeRequestEntry, GradeKey, GradeRecord, HistoryEntry,
    ItemOutcome, OutcomeKind, ReviewState, MIN_GRADE, MAX_GRADE
)
from ..exceptions import GradeEngineError, InvalidTransition, NotFound, ValidationError
from ..utils.academic_year import current_academic_year
from .approval_service import ApprovalStateMachine, derive_submission_status

logger = logging.getLogger(__name__)


@dataclass
class GradeChange:
    """单个学生的成绩修改内容"""
    student_id: str
    new_grade: int


@dataclass
class ChangeRequestResult:
    """成绩修改申请提交结果"""
    batch_id: Optional[str]
    created: List[ChangeRequestEntry] = field(default_factory=list)
    unchanged: List[GradeKey] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "createdRequests": [e.to_dict() for e in self.created],
            "unchanged": [k.to_dict() for k in self.unchanged],
        }


class ChangeRequestProcessor:
    """
    成绩修改申请处理器

    修改申请不会直接生效：目标成绩重新进入 Pending 状态并保存修改前的值，
    必须由管理员像新提交的成绩一样审核通过或驳回。
    """

    def __init__(self, store: GradeStore, state_machine: Optional[ApprovalStateMachine] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock
        self.state_machine = state_machine or ApprovalStateMachine(store, clock=clock)

    def submit_change_request(self, submission_id: str, reason: str, changes: List[GradeChange],
                              period: Optional[str] = None,
                              teacher_id: Optional[str] = None) -> ChangeRequestResult:
        """
        提交成绩修改申请

        相同内容重复提交（记录已在审核中且申请成绩相同）不会产生新的申请和历史记录。
        """
        reason = self._validate(submission_id, reason, changes)

        # 先定位全部目标记录并检查状态，再执行写入
        targets: List[Tuple[GradeChange, GradeRecord]] = []
        unchanged: List[GradeKey] = []
        for change in changes:
            record = self._find_target(submission_id, change.student_id, period)
            if record.is_under_review:
                if record.review.proposed_grade == change.new_grade:
                    logger.debug(f"重复的成绩修改申请，忽略: {record.key}")
                    unchanged.append(record.key)
                    continue
                raise InvalidTransition(
                    f"学生 {change.student_id} 的成绩已有待审核的修改申请"
                )
            if record.status == GradeStatus.PENDING:
                raise InvalidTransition(
                    f"学生 {change.student_id} 的成绩尚未审核，无需提交修改申请"
                )
            if teacher_id is not None and record.teacher_id != teacher_id:
                raise ValidationError(
                    f"教师 {teacher_id} 无权修改该提交的成绩", field="teacherId"
                )
            targets.append((change, record))

        if not targets:
            return ChangeRequestResult(batch_id=None, unchanged=unchanged)

        batch_id = f"BCR-{uuid.uuid4()}"
        now = self.clock()
        result = ChangeRequestResult(batch_id=batch_id, unchanged=unchanged)

        for change, record in targets:
            # 成绩记录按版本号更新成功后才保存修改申请
            request_id = uuid.uuid4().hex
            original_grade = record.grade
            original_status = record.status
            expected_version = record.version
            record.review = ReviewState(
                previous_grade=record.grade,
                previous_status=record.status,
                previous_rejection_reason=record.rejection_reason,
                proposed_grade=change.new_grade,
                reason=reason,
                request_id=request_id,
                requested_at=now,
            )
            record.grade = change.new_grade
            record.status = GradeStatus.PENDING
            record.rejection_reason = None
            record.last_updated = now
            updated = self.store.update(record, expected_version)

            entry = self.store.add_change_request(ChangeRequestEntry(
                request_id=request_id,
                batch_id=batch_id,
                submission_id=updated.submission_id,
                key=updated.key,
                teacher_id=updated.teacher_id,
                student_name=updated.student_name,
                original_grade=original_grade,
                original_status=original_status,
                requested_grade=change.new_grade,
                reason=reason,
                status=GradeStatus.PENDING,
                submitted_at=now,
            ))
            self.store.add_history(HistoryEntry(
                key=updated.key,
                submission_id=updated.submission_id,
                change_type=ChangeType.CHANGE_REQUESTED,
                grade=updated.grade,
                status=updated.status,
                note=reason,
                recorded_at=now,
            ))
            result.created.append(entry)

        logger.info(
            f"Change request batch {batch_id} created for submission {submission_id}: "
            f"{len(result.created)} request(s)"
        )
        return result

    def resolve(self, request_ids: List[str], status: str,
                admin_rejection_reason: Optional[str] = None) -> BulkTransitionResult:
        """管理员审核修改申请（通过则应用新成绩，驳回则恢复原成绩）"""
        if not request_ids:
            raise ValidationError("requestIds 不能为空", field="requestIds")
        try:
            decision = GradeStatus(status)
        except ValueError:
            raise ValidationError(f"无效的状态: {status}", field="status")
        if decision == GradeStatus.PENDING:
            raise ValidationError("状态只能为 Approved 或 Rejected", field="status")
        if decision == GradeStatus.REJECTED and (
            admin_rejection_reason is None or not admin_rejection_reason.strip()
        ):
            raise ValidationError("驳回修改申请必须提供原因", field="adminRejectionReason")

        result = BulkTransitionResult()
        for request_id in request_ids:
            try:
                entry = self.store.get_change_request(request_id)
                if entry is None:
                    raise NotFound(f"成绩修改申请不存在: {request_id}")
                if entry.status != GradeStatus.PENDING:
                    logger.debug(f"修改申请 {request_id} 已处理，跳过")
                    result.outcomes.append(ItemOutcome(
                        key=entry.key,
                        outcome=OutcomeKind.SKIPPED,
                        status=entry.status,
                        submission_id=entry.submission_id,
                    ))
                    continue

                record = self.store.get(entry.key)
                if record is None:
                    raise NotFound(f"成绩记录不存在: {entry.key}")
                if record.review is None or record.review.request_id != request_id:
                    raise InvalidTransition(f"成绩记录不在该修改申请的审核中: {entry.key}")

                if decision == GradeStatus.APPROVED:
                    updated = self.state_machine.approve(entry.key)
                else:
                    updated = self.state_machine.reject(entry.key, admin_rejection_reason)
                result.outcomes.append(ItemOutcome(
                    key=updated.key,
                    outcome=OutcomeKind.APPLIED,
                    status=updated.status,
                    submission_id=entry.submission_id,
                ))
            except GradeEngineError as e:
                logger.warning(f"处理修改申请 {request_id} 失败: {e.message}")
                result.outcomes.append(ItemOutcome(
                    key=None,
                    outcome=OutcomeKind.FAILED,
                    error_code=e.code,
                    message=e.message,
                ))
        return result

    def list_batches(self, academic_year: Optional[str] = None,
                     teacher_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """按批次分组列出修改申请，最新的在前"""
        academic_year = academic_year or current_academic_year()
        entries = self.store.find_change_requests(academic_year=academic_year, teacher_id=teacher_id)

        batches: Dict[str, Dict[str, Any]] = {}
        for entry in entries:
            batch = batches.get(entry.batch_id)
            if batch is None:
                batch = {
                    "batchId": entry.batch_id,
                    "academicYear": entry.key.academic_year,
                    "period": entry.key.period,
                    "classId": entry.key.class_id,
                    "subject": entry.key.subject,
                    "teacherId": entry.teacher_id,
                    "submittedAt": entry.submitted_at,
                    "requests": [],
                }
                batches[entry.batch_id] = batch
            batch["requests"].append(entry)

        report = []
        for batch in batches.values():
            requests = batch.pop("requests")
            batch["status"] = derive_submission_status(r.status for r in requests).value
            batch["stats"] = {"totalRequests": len(requests)}
            batch["requests"] = [r.to_dict() for r in requests]
            report.append(batch)

        report.sort(key=lambda b: b["submittedAt"] or datetime.min, reverse=True)
        for batch in report:
            batch["submittedAt"] = batch["submittedAt"].isoformat() if batch["submittedAt"] else None
        return report

    def _validate(self, submission_id: str, reason: str, changes: List[GradeChange]) -> str:
        if not submission_id:
            raise ValidationError("submissionId 不能为空", field="submissionId")
        if reason is None or not reason.strip():
            raise ValidationError("修改原因不能为空", field="reason")
        if not changes:
            raise ValidationError("至少需要一条成绩修改", field="changes")

        seen = set()
        for index, change in enumerate(changes):
            if not change.student_id:
                raise ValidationError("studentId 不能为空", field=f"changes[{index}].studentId")
            grade = change.new_grade
            if isinstance(grade, bool) or not isinstance(grade, int) or not MIN_GRADE <= grade <= MAX_GRADE:
                raise ValidationError(
                    f"新成绩必须在{MIN_GRADE}-{MAX_GRADE}之间: {grade!r}",
                    field=f"changes[{index}].newGrade",
                )
            if change.student_id in seen:
                raise ValidationError(
                    f"学生 {change.student_id} 重复出现", field=f"changes[{index}].studentId"
                )
            seen.add(change.student_id)
        return reason.strip()

    def _find_target(self, submission_id: str, student_id: str,
                     period: Optional[str]) -> GradeRecord:
        records = self.store.find_by_submission(submission_id, student_id, period)
        if not records:
            raise NotFound(f"提交 {submission_id} 中不存在学生 {student_id} 的成绩")
        if len(records) > 1:
            raise ValidationError(
                f"提交 {submission_id} 中学生 {student_id} 有多个周期的成绩，请指定周期",
                field="period",
            )
        return records[0]
