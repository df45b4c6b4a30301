# 成绩提交与分组测试
import pytest

from app.database.enums import ChangeType, GradeStatus, SubmissionStatus
from app.database.schemas import GradeKey, GradeRecord
from app.exceptions import InvalidTransition, ValidationError
from app.services.approval_service import ApprovalStateMachine
from app.services.submission_service import GradeEntry, SubmissionGrouper, SubmissionService

from conftest import ACADEMIC_YEAR


def _entries(*rows):
    return [GradeEntry(sid, f"Student {sid}", grade, period) for sid, grade, period in rows]


class TestSubmissionGrouper:
    """测试按 submissionId 分组"""

    def _record(self, submission_id, student_id, grade, status=GradeStatus.PENDING, period="firstPeriod"):
        return GradeRecord(
            ACADEMIC_YEAR, "7A", "Math", period, student_id, "T1", f"Student {student_id}",
            submission_id, grade=grade, status=status,
            rejection_reason="late" if status == GradeStatus.REJECTED else None,
        )

    def test_groups_by_submission_id_not_logical_key(self):
        """同一班级/科目/周期的两次提交保持独立"""
        records = [
            self._record("SUB-1", "S1", 80),
            self._record("SUB-2", "S2", 90),
            self._record("SUB-1", "S3", None),
        ]
        groups = SubmissionGrouper().group(records)

        assert list(groups) == ["SUB-1", "SUB-2"]
        assert [r.student_id for r in groups["SUB-1"].records] == ["S1", "S3"]
        assert groups["SUB-2"].period == "firstPeriod"

    def test_stats_per_submission(self):
        records = [
            self._record("SUB-1", "S1", 80),
            self._record("SUB-1", "S2", None),
            self._record("SUB-1", "S3", 55),
        ]
        (submission, stats), = SubmissionGrouper().group_with_stats(records).values()

        assert stats.total_students == 3
        assert stats.incompletes == 1
        assert stats.average == 67.5
        assert submission.status == SubmissionStatus.PENDING

    def test_status_is_recomputed_on_read(self):
        records = [self._record("SUB-1", "S1", 80), self._record("SUB-1", "S2", 70)]
        submission = SubmissionGrouper().group(records)["SUB-1"]
        assert submission.status == SubmissionStatus.PENDING

        submission.records[0].status = GradeStatus.APPROVED
        assert submission.status == SubmissionStatus.PARTIALLY_APPROVED

    def test_mixed_periods(self):
        records = [
            self._record("SUB-1", "S1", 80, period="secondPeriod"),
            self._record("SUB-1", "S1", 75, period="firstPeriod"),
        ]
        submission = SubmissionGrouper().group(records)["SUB-1"]
        assert submission.periods == ["firstPeriod", "secondPeriod"]
        assert submission.period is None

    def test_empty_input(self):
        assert SubmissionGrouper().group([]) == {}


class TestSubmissionService:
    """测试成绩提交"""

    def test_submit_creates_pending_records(self, store, clock):
        service = SubmissionService(store, clock=clock)

        submission = service.submit_grades(
            "T1", "7A", "Math",
            _entries(("S1", 80, "firstPeriod"), ("S2", None, "firstPeriod"), ("S3", 55, "firstPeriod")),
            academic_year=ACADEMIC_YEAR,
        )

        assert submission.submission_id.startswith("SUB-")
        assert submission.status == SubmissionStatus.PENDING
        assert all(r.status == GradeStatus.PENDING for r in submission.records)
        assert submission.stats().to_dict() == {
            "totalStudents": 3, "passes": 1, "fails": 1, "incompletes": 1, "average": 67.5,
        }
        stored = store.get(GradeKey(ACADEMIC_YEAR, "7A", "Math", "firstPeriod", "S2"))
        assert stored.grade is None

    def test_each_submission_gets_new_id(self, store, clock):
        service = SubmissionService(store, clock=clock)
        first = service.submit_grades("T1", "7A", "Math", _entries(("S1", 80, "firstPeriod")),
                                      academic_year=ACADEMIC_YEAR)
        second = service.submit_grades("T1", "7A", "Math", _entries(("S2", 70, "firstPeriod")),
                                       academic_year=ACADEMIC_YEAR)
        assert first.submission_id != second.submission_id

    @pytest.mark.parametrize("grade", [-1, 101, 85.5, "90", True])
    def test_out_of_range_grade_rejected_before_write(self, store, clock, grade):
        """任一成绩不合法时整个提交失败，不写入任何记录"""
        service = SubmissionService(store, clock=clock)

        with pytest.raises(ValidationError) as exc_info:
            service.submit_grades(
                "T1", "7A", "Math",
                _entries(("S1", 80, "firstPeriod"), ("S2", grade, "firstPeriod")),
                academic_year=ACADEMIC_YEAR,
            )

        assert exc_info.value.field == "grades[1].grade"
        assert store.get(GradeKey(ACADEMIC_YEAR, "7A", "Math", "firstPeriod", "S1")) is None

    def test_boundary_grades_accepted(self, store, clock):
        service = SubmissionService(store, clock=clock)
        submission = service.submit_grades(
            "T1", "7A", "Math", _entries(("S1", 0, "firstPeriod"), ("S2", 100, "firstPeriod")),
            academic_year=ACADEMIC_YEAR,
        )
        assert [r.grade for r in submission.records] == [0, 100]

    def test_invalid_period(self, store, clock):
        service = SubmissionService(store, clock=clock)
        with pytest.raises(ValidationError) as exc_info:
            service.submit_grades("T1", "7A", "Math", _entries(("S1", 80, "seventhPeriod")),
                                  academic_year=ACADEMIC_YEAR)
        assert exc_info.value.field == "grades[0].period"

    def test_empty_grades(self, store, clock):
        service = SubmissionService(store, clock=clock)
        with pytest.raises(ValidationError):
            service.submit_grades("T1", "7A", "Math", [], academic_year=ACADEMIC_YEAR)

    def test_duplicate_student_period(self, store, clock):
        service = SubmissionService(store, clock=clock)
        with pytest.raises(ValidationError):
            service.submit_grades(
                "T1", "7A", "Math", _entries(("S1", 80, "firstPeriod"), ("S1", 81, "firstPeriod")),
                academic_year=ACADEMIC_YEAR,
            )

    def test_pending_key_cannot_be_submitted_again(self, store, clock):
        service = SubmissionService(store, clock=clock)
        service.submit_grades("T1", "7A", "Math", _entries(("S1", 80, "firstPeriod")),
                              academic_year=ACADEMIC_YEAR)

        with pytest.raises(InvalidTransition):
            service.submit_grades("T1", "7A", "Math", _entries(("S1", 82, "firstPeriod")),
                                  academic_year=ACADEMIC_YEAR)

    def test_rejected_requires_explicit_resubmit(self, store, clock):
        """已驳回的成绩需要显式重新提交"""
        service = SubmissionService(store, clock=clock)
        first = service.submit_grades("T1", "7A", "Math", _entries(("S1", 40, "firstPeriod")),
                                      academic_year=ACADEMIC_YEAR)
        key = GradeKey(ACADEMIC_YEAR, "7A", "Math", "firstPeriod", "S1")
        ApprovalStateMachine(store, clock=clock).reject(key, "absent during exam")

        with pytest.raises(ValidationError):
            service.submit_grades("T1", "7A", "Math", _entries(("S1", 75, "firstPeriod")),
                                  academic_year=ACADEMIC_YEAR)

        second = service.submit_grades("T1", "7A", "Math", _entries(("S1", 75, "firstPeriod")),
                                       academic_year=ACADEMIC_YEAR, resubmit=True)

        record = store.get(key)
        assert record.submission_id == second.submission_id
        assert record.submission_id != first.submission_id
        assert record.status == GradeStatus.PENDING
        assert record.grade == 75
        assert record.rejection_reason is None

        superseded = store.history(key)[-1]
        assert superseded.change_type == ChangeType.RESUBMITTED
        assert superseded.grade == 40
        assert superseded.status == GradeStatus.REJECTED
        assert superseded.rejection_reason == "absent during exam"
        assert superseded.submission_id == first.submission_id

    def test_default_academic_year(self, store, clock):
        service = SubmissionService(store, clock=clock)
        submission = service.submit_grades("T1", "7A", "Math", _entries(("S1", 80, "firstPeriod")))
        start, end = submission.academic_year.split("/")
        assert int(end) == int(start) + 1
