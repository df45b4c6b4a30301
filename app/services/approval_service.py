# 成绩审核状态机服务
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple, Union

from ..database.enums import ChangeType, GradeStatus, SubmissionStatus
from ..database.repositories import GradeStore
from ..database.schemas import (
    BulkTransitionResult, GradeKey, GradeRecord, HistoryEntry, ItemOutcome, OutcomeKind
)
from ..exceptions import GradeEngineError, InvalidTransition, NotFound, ValidationError

logger = logging.getLogger(__name__)


def derive_submission_status(statuses: Iterable[Union[GradeStatus, str]]) -> SubmissionStatus:
    """
    根据成员成绩状态派生提交批次状态（纯函数，与顺序无关）

    - 空集合 => Pending
    - 全部 Approved => Approved
    - 全部 Rejected => Rejected
    - 其他情况：至少一个 Approved => Partially Approved，否则 Pending
    """
    members = {GradeStatus(s) for s in statuses}
    if not members:
        return SubmissionStatus.PENDING
    if members == {GradeStatus.APPROVED}:
        return SubmissionStatus.APPROVED
    if members == {GradeStatus.REJECTED}:
        return SubmissionStatus.REJECTED
    if GradeStatus.APPROVED in members:
        return SubmissionStatus.PARTIALLY_APPROVED
    return SubmissionStatus.PENDING


def _require_reason(reason: Optional[str], field: str = "rejectionReason") -> str:
    if reason is None or not str(reason).strip():
        raise ValidationError("驳回原因不能为空", field=field)
    return str(reason).strip()


@dataclass
class StatusUpdate:
    """单项状态变更请求"""
    submission_id: str
    student_id: str
    status: str
    rejection_reason: Optional[str] = None
    period: Optional[str] = None


class ApprovalStateMachine:
    """
    成绩审核状态机

    Pending -> Approved / Rejected。Approved 和 Rejected 只能通过新的操作重新打开：
    驳回后重新提交，或通过成绩修改申请重新进入 Pending。
    """

    def __init__(self, store: GradeStore, clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.clock = clock

    # ------------------------------------------------------------------
    # 单条操作
    # ------------------------------------------------------------------

    def approve(self, key: GradeKey) -> GradeRecord:
        """审核通过单条成绩；已通过时不做任何修改（保留原 lastUpdated）"""
        record, _ = self._approve(self._load(key))
        return record

    def reject(self, key: GradeKey, reason: str) -> GradeRecord:
        """驳回单条成绩，reason 必须非空"""
        reason = _require_reason(reason)
        record, _ = self._reject(self._load(key), reason)
        return record

    # ------------------------------------------------------------------
    # 批量操作（逐条独立写入，单条失败不影响其他记录）
    # ------------------------------------------------------------------

    def approve_many(self, keys: Iterable[GradeKey]) -> BulkTransitionResult:
        """批量审核通过，只处理 Pending 状态的记录，其余记录计为跳过"""
        return self._bulk(keys, self._approve)

    def reject_many(self, keys: Iterable[GradeKey], reason: str) -> BulkTransitionResult:
        """批量驳回，只处理 Pending 状态的记录，其余记录计为跳过"""
        reason = _require_reason(reason)
        return self._bulk(keys, lambda record: self._reject(record, reason))

    def update_statuses(self, items: List[StatusUpdate]) -> BulkTransitionResult:
        """
        按 (submissionId, studentId) 更新成绩状态

        先校验全部请求项（状态取值、驳回原因），任一不合法则整个请求失败且不写入；
        校验通过后逐项执行，每项结果单独返回。
        与批量操作一致，只处理 Pending 状态的记录，已通过或已驳回的记录计为跳过。
        """
        if not items:
            raise ValidationError("状态更新列表不能为空", field="updates")

        targets: List[Tuple[StatusUpdate, GradeStatus, Optional[str]]] = []
        for index, item in enumerate(items):
            if not item.submission_id:
                raise ValidationError("submissionId 不能为空", field=f"updates[{index}].submissionId")
            if not item.student_id:
                raise ValidationError("studentId 不能为空", field=f"updates[{index}].studentId")
            try:
                status = GradeStatus(item.status)
            except ValueError:
                raise ValidationError(
                    f"无效的状态: {item.status}", field=f"updates[{index}].status"
                )
            if status == GradeStatus.PENDING:
                raise ValidationError(
                    "状态只能更新为 Approved 或 Rejected", field=f"updates[{index}].status"
                )
            reason = None
            if status == GradeStatus.REJECTED:
                reason = _require_reason(item.rejection_reason, field=f"updates[{index}].rejectionReason")
            targets.append((item, status, reason))

        result = BulkTransitionResult()
        for item, status, reason in targets:
            try:
                records = self.store.find_by_submission(item.submission_id, item.student_id, item.period)
                if not records:
                    raise NotFound(
                        f"提交 {item.submission_id} 中不存在学生 {item.student_id} 的成绩"
                    )
            except GradeEngineError as e:
                result.outcomes.append(ItemOutcome(
                    key=None,
                    outcome=OutcomeKind.FAILED,
                    error_code=e.code,
                    message=e.message,
                    submission_id=item.submission_id,
                    student_id=item.student_id,
                ))
                continue

            for record in records:
                if record.status != GradeStatus.PENDING:
                    logger.debug(f"跳过非待审核记录 {record.key} (状态 {record.status.value})")
                    result.outcomes.append(ItemOutcome(
                        key=record.key,
                        outcome=OutcomeKind.SKIPPED,
                        status=record.status,
                        submission_id=item.submission_id,
                    ))
                    continue
                try:
                    if status == GradeStatus.APPROVED:
                        updated, outcome = self._approve(record)
                    else:
                        updated, outcome = self._reject(record, reason)
                    result.outcomes.append(ItemOutcome(
                        key=updated.key,
                        outcome=outcome,
                        status=updated.status,
                        submission_id=item.submission_id,
                    ))
                except GradeEngineError as e:
                    logger.warning(f"状态更新失败 {record.key}: {e.message}")
                    result.outcomes.append(ItemOutcome(
                        key=record.key,
                        outcome=OutcomeKind.FAILED,
                        status=record.status,
                        error_code=e.code,
                        message=e.message,
                        submission_id=item.submission_id,
                    ))

        logger.info(
            f"Status update finished: requested={result.requested}, applied={result.applied}, "
            f"unchanged={result.unchanged}, skipped={result.skipped}, failed={result.failed}"
        )
        return result

    # ------------------------------------------------------------------
    # 内部实现
    # ------------------------------------------------------------------

    def _load(self, key: GradeKey) -> GradeRecord:
        record = self.store.get(key)
        if record is None:
            raise NotFound(f"成绩记录不存在: {key}")
        return record

    def _bulk(self, keys: Iterable[GradeKey],
              action: Callable[[GradeRecord], Tuple[GradeRecord, OutcomeKind]]) -> BulkTransitionResult:
        result = BulkTransitionResult()
        for key in keys:
            try:
                record = self._load(key)
                if record.status != GradeStatus.PENDING:
                    logger.debug(f"跳过非待审核记录 {key} (状态 {record.status.value})")
                    result.outcomes.append(ItemOutcome(
                        key=key,
                        outcome=OutcomeKind.SKIPPED,
                        status=record.status,
                        submission_id=record.submission_id,
                    ))
                    continue
                updated, outcome = action(record)
                result.outcomes.append(ItemOutcome(
                    key=key,
                    outcome=outcome,
                    status=updated.status,
                    submission_id=updated.submission_id,
                ))
            except GradeEngineError as e:
                logger.warning(f"批量操作失败 {key}: {e.message}")
                result.outcomes.append(ItemOutcome(
                    key=key,
                    outcome=OutcomeKind.FAILED,
                    error_code=e.code,
                    message=e.message,
                ))
        return result

    def _approve(self, record: GradeRecord) -> Tuple[GradeRecord, OutcomeKind]:
        if record.status == GradeStatus.APPROVED:
            logger.debug(f"成绩已审核通过，无需处理: {record.key}")
            return record, OutcomeKind.UNCHANGED
        if record.status == GradeStatus.REJECTED:
            raise InvalidTransition(
                f"已驳回的成绩不能直接审核通过，请重新提交: {record.key}"
            )

        now = self.clock()
        review = record.review
        expected_version = record.version

        if review is not None:
            record.grade = review.proposed_grade
            change_type = ChangeType.CHANGE_APPROVED
            note = review.reason
        else:
            change_type = ChangeType.APPROVED
            note = None
        record.status = GradeStatus.APPROVED
        record.rejection_reason = None
        record.review = None
        record.last_updated = now

        updated = self.store.update(record, expected_version)
        self.store.add_history(HistoryEntry(
            key=updated.key,
            submission_id=updated.submission_id,
            change_type=change_type,
            grade=updated.grade,
            status=updated.status,
            note=note,
            recorded_at=now,
        ))
        if review is not None and review.request_id:
            self._resolve_change_request(review.request_id, GradeStatus.APPROVED, None, now)

        logger.info(f"Approved grade {updated.key} (submission {updated.submission_id})")
        return updated, OutcomeKind.APPLIED

    def _reject(self, record: GradeRecord, reason: str) -> Tuple[GradeRecord, OutcomeKind]:
        if record.status == GradeStatus.APPROVED:
            raise InvalidTransition(
                f"已审核通过的成绩不能直接驳回，请提交成绩修改申请: {record.key}"
            )
        if record.status == GradeStatus.REJECTED and record.rejection_reason == reason:
            logger.debug(f"成绩已以相同原因驳回，无需处理: {record.key}")
            return record, OutcomeKind.UNCHANGED

        now = self.clock()
        review = record.review
        expected_version = record.version

        if record.status == GradeStatus.REJECTED:
            # 更正驳回原因
            record.rejection_reason = reason
            change_type = ChangeType.REASON_CORRECTED
            note = None
        elif review is not None:
            # 驳回修改申请：完整恢复修改前的成绩、状态和驳回原因
            record.grade = review.previous_grade
            record.status = review.previous_status
            record.rejection_reason = review.previous_rejection_reason
            change_type = ChangeType.CHANGE_REJECTED
            note = reason
        else:
            record.status = GradeStatus.REJECTED
            record.rejection_reason = reason
            change_type = ChangeType.REJECTED
            note = None
        record.review = None
        record.last_updated = now

        updated = self.store.update(record, expected_version)
        self.store.add_history(HistoryEntry(
            key=updated.key,
            submission_id=updated.submission_id,
            change_type=change_type,
            grade=updated.grade,
            status=updated.status,
            rejection_reason=updated.rejection_reason,
            note=note,
            recorded_at=now,
        ))
        if review is not None and review.request_id:
            self._resolve_change_request(review.request_id, GradeStatus.REJECTED, reason, now)

        logger.info(f"Rejected grade {updated.key} ({change_type.value})")
        return updated, OutcomeKind.APPLIED

    def _resolve_change_request(self, request_id: str, status: GradeStatus,
                                admin_reason: Optional[str], resolved_at: datetime) -> None:
        entry = self.store.get_change_request(request_id)
        if entry is None:
            logger.warning(f"成绩修改申请不存在: {request_id}")
            return
        entry.status = status
        entry.admin_rejection_reason = admin_reason
        entry.resolved_at = resolved_at
        self.store.update_change_request(entry)
        logger.info(f"Change request {request_id} resolved as {status.value}")
