# 成绩审核状态机测试
import itertools
import random

import pytest

from app.database.enums import ChangeType, GradeStatus, SubmissionStatus
from app.database.schemas import GradeKey, OutcomeKind
from app.exceptions import InvalidTransition, NotFound, ValidationError
from app.services.approval_service import ApprovalStateMachine, StatusUpdate, derive_submission_status
from app.services.submission_service import GradeEntry, SubmissionService

from conftest import ACADEMIC_YEAR

P, A, R = GradeStatus.PENDING, GradeStatus.APPROVED, GradeStatus.REJECTED


def _key(student_id: str, period: str = "firstPeriod") -> GradeKey:
    return GradeKey(ACADEMIC_YEAR, "7A", "Math", period, student_id)


def _submit(store, clock, grades):
    service = SubmissionService(store, clock=clock)
    return service.submit_grades(
        teacher_id="T1",
        class_id="7A",
        subject="Math",
        grades=[GradeEntry(sid, f"Student {sid}", grade, "firstPeriod") for sid, grade in grades],
        academic_year=ACADEMIC_YEAR,
    )


class TestDeriveSubmissionStatus:
    """测试提交批次状态派生"""

    def test_empty_is_pending(self):
        assert derive_submission_status([]) == SubmissionStatus.PENDING

    @pytest.mark.parametrize("members,expected", [
        ([A], SubmissionStatus.APPROVED),
        ([A, A, A], SubmissionStatus.APPROVED),
        ([R, R], SubmissionStatus.REJECTED),
        ([P], SubmissionStatus.PENDING),
        ([P, R], SubmissionStatus.PENDING),
        ([A, P], SubmissionStatus.PARTIALLY_APPROVED),
        ([A, R], SubmissionStatus.PARTIALLY_APPROVED),
        ([A, A, R], SubmissionStatus.PARTIALLY_APPROVED),
        ([A, P, R], SubmissionStatus.PARTIALLY_APPROVED),
    ])
    def test_derivation_table(self, members, expected):
        assert derive_submission_status(members) == expected

    def test_accepts_plain_strings(self):
        assert derive_submission_status(["Approved", "Rejected"]) == SubmissionStatus.PARTIALLY_APPROVED

    def test_total_and_order_independent(self):
        """所有长度不超过4的组合都有唯一结果，且与顺序无关"""
        rng = random.Random(42)
        for size in range(0, 5):
            for members in itertools.product([P, A, R], repeat=size):
                expected = derive_submission_status(members)
                assert expected in set(SubmissionStatus)
                shuffled = list(members)
                rng.shuffle(shuffled)
                assert derive_submission_status(shuffled) == expected


class TestApprove:
    """测试审核通过"""

    def test_approve_pending(self, store, clock):
        _submit(store, clock, [("S1", 85)])
        machine = ApprovalStateMachine(store, clock=clock)

        record = machine.approve(_key("S1"))

        assert record.status == GradeStatus.APPROVED
        assert record.grade == 85
        assert record.rejection_reason is None
        assert [h.change_type for h in store.history(_key("S1"))] == [ChangeType.CREATED, ChangeType.APPROVED]

    def test_approve_is_idempotent_and_keeps_last_updated(self, store, clock):
        """重复审核通过不做修改，保留第一次审核的时间"""
        _submit(store, clock, [("S1", 85)])
        machine = ApprovalStateMachine(store, clock=clock)

        first = machine.approve(_key("S1"))
        second = machine.approve(_key("S1"))

        assert second.status == GradeStatus.APPROVED
        assert second.last_updated == first.last_updated
        assert second.version == first.version
        assert len(store.history(_key("S1"))) == 2

    def test_approve_rejected_is_invalid(self, store, clock):
        """已驳回的成绩不能直接审核通过"""
        _submit(store, clock, [("S1", 40)])
        machine = ApprovalStateMachine(store, clock=clock)
        machine.reject(_key("S1"), "late submission")

        with pytest.raises(InvalidTransition):
            machine.approve(_key("S1"))

    def test_approve_missing_record(self, store, clock):
        machine = ApprovalStateMachine(store, clock=clock)
        with pytest.raises(NotFound):
            machine.approve(_key("NOBODY"))


class TestReject:
    """测试驳回"""

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_empty_reason_fails(self, store, clock, reason):
        """驳回原因为空时校验失败，且不修改记录"""
        _submit(store, clock, [("S1", 85)])
        machine = ApprovalStateMachine(store, clock=clock)

        with pytest.raises(ValidationError) as exc_info:
            machine.reject(_key("S1"), reason)

        assert exc_info.value.field == "rejectionReason"
        assert store.get(_key("S1")).status == GradeStatus.PENDING

    def test_reject_sets_reason(self, store, clock):
        _submit(store, clock, [("S1", 85)])
        machine = ApprovalStateMachine(store, clock=clock)

        record = machine.reject(_key("S1"), "late submission")

        assert record.status == GradeStatus.REJECTED
        assert record.rejection_reason == "late submission"

    def test_same_reason_is_noop(self, store, clock):
        _submit(store, clock, [("S1", 85)])
        machine = ApprovalStateMachine(store, clock=clock)
        first = machine.reject(_key("S1"), "late submission")

        second = machine.reject(_key("S1"), "late submission")

        assert second.version == first.version
        assert second.last_updated == first.last_updated

    def test_different_reason_overwrites(self, store, clock):
        """已驳回的成绩可以更正驳回原因"""
        _submit(store, clock, [("S1", 85)])
        machine = ApprovalStateMachine(store, clock=clock)
        machine.reject(_key("S1"), "late submission")

        record = machine.reject(_key("S1"), "absent during exam")

        assert record.rejection_reason == "absent during exam"
        assert store.history(_key("S1"))[-1].change_type == ChangeType.REASON_CORRECTED

    def test_reject_approved_is_invalid(self, store, clock):
        _submit(store, clock, [("S1", 85)])
        machine = ApprovalStateMachine(store, clock=clock)
        machine.approve(_key("S1"))

        with pytest.raises(InvalidTransition):
            machine.reject(_key("S1"), "wrong")


class TestBulkOperations:
    """测试批量操作"""

    def test_approve_many_skips_decided_records(self, store, clock):
        """非Pending记录被跳过并单独计数"""
        _submit(store, clock, [("S1", 80), ("S2", 90), ("S3", 50)])
        machine = ApprovalStateMachine(store, clock=clock)
        machine.approve(_key("S1"))
        machine.reject(_key("S3"), "absent during exam")

        result = machine.approve_many([_key("S1"), _key("S2"), _key("S3")])

        assert result.requested == 3
        assert result.applied == 1
        assert result.skipped == 2
        assert result.failed == 0
        assert store.get(_key("S2")).status == GradeStatus.APPROVED
        assert store.get(_key("S3")).status == GradeStatus.REJECTED

    def test_nothing_to_do_is_distinguishable(self, store, clock):
        _submit(store, clock, [("S1", 80)])
        machine = ApprovalStateMachine(store, clock=clock)
        machine.approve(_key("S1"))

        result = machine.approve_many([_key("S1")])

        assert result.applied == 0
        assert result.skipped == 1

    def test_partial_failure_does_not_roll_back_others(self, store, clock):
        """单条失败不影响其他记录"""
        _submit(store, clock, [("S1", 80), ("S2", 90)])
        machine = ApprovalStateMachine(store, clock=clock)

        result = machine.reject_many([_key("S1"), _key("MISSING"), _key("S2")], "incomplete work")

        assert result.applied == 2
        assert result.failed == 1
        failed = [o for o in result.outcomes if o.outcome == OutcomeKind.FAILED][0]
        assert failed.error_code == "NOT_FOUND"
        assert store.get(_key("S1")).rejection_reason == "incomplete work"
        assert store.get(_key("S2")).rejection_reason == "incomplete work"

    def test_reject_many_validates_reason_first(self, store, clock):
        _submit(store, clock, [("S1", 80)])
        machine = ApprovalStateMachine(store, clock=clock)

        with pytest.raises(ValidationError):
            machine.reject_many([_key("S1")], "")

        assert store.get(_key("S1")).status == GradeStatus.PENDING


class TestUpdateStatuses:
    """测试按 submissionId + studentId 更新状态"""

    def test_mixed_decisions(self, store, clock):
        submission = _submit(store, clock, [("S1", 80), ("S2", None), ("S3", 55)])
        machine = ApprovalStateMachine(store, clock=clock)

        result = machine.update_statuses([
            StatusUpdate(submission.submission_id, "S1", "Approved"),
            StatusUpdate(submission.submission_id, "S2", "Approved"),
            StatusUpdate(submission.submission_id, "S3", "Rejected", "absent during exam"),
        ])

        assert result.applied == 3
        statuses = [r.status for r in store.find_by_submission(submission.submission_id)]
        assert derive_submission_status(statuses) == SubmissionStatus.PARTIALLY_APPROVED

    def test_invalid_item_rejects_whole_batch(self, store, clock):
        """任一请求项不合法时不做任何写入"""
        submission = _submit(store, clock, [("S1", 80), ("S2", 90)])
        machine = ApprovalStateMachine(store, clock=clock)

        with pytest.raises(ValidationError) as exc_info:
            machine.update_statuses([
                StatusUpdate(submission.submission_id, "S1", "Approved"),
                StatusUpdate(submission.submission_id, "S2", "Rejected"),
            ])

        assert exc_info.value.field == "updates[1].rejectionReason"
        assert store.get(_key("S1")).status == GradeStatus.PENDING

    def test_unknown_status(self, store, clock):
        submission = _submit(store, clock, [("S1", 80)])
        machine = ApprovalStateMachine(store, clock=clock)

        with pytest.raises(ValidationError):
            machine.update_statuses([StatusUpdate(submission.submission_id, "S1", "Pending")])
        with pytest.raises(ValidationError):
            machine.update_statuses([StatusUpdate(submission.submission_id, "S1", "Done")])

    def test_per_item_results(self, store, clock):
        submission = _submit(store, clock, [("S1", 80)])
        machine = ApprovalStateMachine(store, clock=clock)
        machine.reject(_key("S1"), "late submission")

        result = machine.update_statuses([
            StatusUpdate(submission.submission_id, "S1", "Approved"),
            StatusUpdate(submission.submission_id, "S9", "Approved"),
        ])

        outcomes = result.to_dict()["results"]
        assert outcomes[0]["success"] is True
        assert outcomes[0]["outcome"] == "skipped"
        assert outcomes[0]["status"] == "Rejected"
        assert outcomes[1]["success"] is False
        assert outcomes[1]["errorCode"] == "NOT_FOUND"
        assert outcomes[1]["studentId"] == "S9"
        assert store.get(_key("S1")).status == GradeStatus.REJECTED

    def test_decided_records_are_skipped(self, store, clock):
        """已审核的记录不参与批量状态更新，计为跳过"""
        submission = _submit(store, clock, [("S1", 80), ("S2", 90)])
        machine = ApprovalStateMachine(store, clock=clock)
        machine.approve(_key("S1"))

        result = machine.update_statuses([
            StatusUpdate(submission.submission_id, "S1", "Rejected", "wrong grade"),
            StatusUpdate(submission.submission_id, "S2", "Rejected", "wrong grade"),
        ])

        assert result.requested == 2
        assert result.applied == 1
        assert result.skipped == 1
        assert result.failed == 0
        assert store.get(_key("S1")).status == GradeStatus.APPROVED
        assert store.get(_key("S2")).status == GradeStatus.REJECTED
