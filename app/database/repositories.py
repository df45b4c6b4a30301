# 数据仓库层（成绩存储）
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, update
from sqlalchemy.exc import (
    DisconnectionError, IntegrityError, OperationalError, SQLAlchemyError,
    TimeoutError as PoolTimeoutError
)
from sqlalchemy.orm import Session

from .enums import ChangeType, GradeStatus
from .models import GradeChangeRequestModel, GradeHistoryModel, GradeRecordModel
from .schemas import (
    ChangeRequestEntry, GradeKey, GradeQuery, GradeRecord, HistoryEntry, ReviewState
)
from ..exceptions import ConcurrentModification, NotFound, StoreUnavailable

logger = logging.getLogger(__name__)


class GradeStore(ABC):
    """成绩存储抽象接口（按键读写）"""

    @abstractmethod
    def get(self, key: GradeKey) -> Optional[GradeRecord]:
        """按唯一键获取成绩记录"""

    @abstractmethod
    def find(self, query: GradeQuery) -> List[GradeRecord]:
        """按条件查询成绩记录"""

    @abstractmethod
    def find_by_submission(self, submission_id: str, student_id: Optional[str] = None,
                           period: Optional[str] = None) -> List[GradeRecord]:
        """获取某次提交中的成绩记录"""

    @abstractmethod
    def insert(self, record: GradeRecord) -> GradeRecord:
        """插入新记录；同键已存在时抛出 ConcurrentModification"""

    @abstractmethod
    def update(self, record: GradeRecord, expected_version: int) -> GradeRecord:
        """按版本号比较后更新（compare-and-swap）"""

    @abstractmethod
    def add_history(self, entry: HistoryEntry) -> None:
        """追加历史记录"""

    @abstractmethod
    def history(self, key: GradeKey) -> List[HistoryEntry]:
        """获取某个键的历史记录（按时间顺序）"""

    @abstractmethod
    def add_change_request(self, entry: ChangeRequestEntry) -> ChangeRequestEntry:
        """保存成绩修改申请"""

    @abstractmethod
    def get_change_request(self, request_id: str) -> Optional[ChangeRequestEntry]:
        """获取成绩修改申请"""

    @abstractmethod
    def update_change_request(self, entry: ChangeRequestEntry) -> ChangeRequestEntry:
        """更新成绩修改申请的处理结果"""

    @abstractmethod
    def find_change_requests(self, academic_year: Optional[str] = None,
                             teacher_id: Optional[str] = None,
                             batch_id: Optional[str] = None) -> List[ChangeRequestEntry]:
        """查询成绩修改申请"""


class InMemoryGradeStore(GradeStore):
    """内存成绩存储，读写均返回副本，语义与数据库实现一致"""

    def __init__(self):
        self._records: Dict[GradeKey, GradeRecord] = {}
        self._history: List[HistoryEntry] = []
        self._change_requests: Dict[str, ChangeRequestEntry] = {}

    def get(self, key: GradeKey) -> Optional[GradeRecord]:
        record = self._records.get(key)
        return copy.deepcopy(record) if record else None

    def find(self, query: GradeQuery) -> List[GradeRecord]:
        return [copy.deepcopy(r) for r in self._records.values() if query.matches(r)]

    def find_by_submission(self, submission_id: str, student_id: Optional[str] = None,
                           period: Optional[str] = None) -> List[GradeRecord]:
        return [
            copy.deepcopy(r) for r in self._records.values()
            if r.submission_id == submission_id
            and (student_id is None or r.student_id == student_id)
            and (period is None or r.period == period)
        ]

    def insert(self, record: GradeRecord) -> GradeRecord:
        record.check_invariants()
        if record.key in self._records:
            raise ConcurrentModification(f"成绩记录已存在: {record.key}")
        stored = copy.deepcopy(record)
        stored.version = 1
        self._records[stored.key] = stored
        return copy.deepcopy(stored)

    def update(self, record: GradeRecord, expected_version: int) -> GradeRecord:
        record.check_invariants()
        current = self._records.get(record.key)
        if current is None:
            raise NotFound(f"成绩记录不存在: {record.key}")
        if current.version != expected_version:
            raise ConcurrentModification(
                f"成绩记录已被修改: {record.key} (期望版本 {expected_version}, 实际版本 {current.version})"
            )
        stored = copy.deepcopy(record)
        stored.version = expected_version + 1
        self._records[stored.key] = stored
        return copy.deepcopy(stored)

    def add_history(self, entry: HistoryEntry) -> None:
        self._history.append(copy.deepcopy(entry))

    def history(self, key: GradeKey) -> List[HistoryEntry]:
        return [copy.deepcopy(h) for h in self._history if h.key == key]

    def add_change_request(self, entry: ChangeRequestEntry) -> ChangeRequestEntry:
        self._change_requests[entry.request_id] = copy.deepcopy(entry)
        return copy.deepcopy(entry)

    def get_change_request(self, request_id: str) -> Optional[ChangeRequestEntry]:
        entry = self._change_requests.get(request_id)
        return copy.deepcopy(entry) if entry else None

    def update_change_request(self, entry: ChangeRequestEntry) -> ChangeRequestEntry:
        if entry.request_id not in self._change_requests:
            raise NotFound(f"成绩修改申请不存在: {entry.request_id}")
        self._change_requests[entry.request_id] = copy.deepcopy(entry)
        return copy.deepcopy(entry)

    def find_change_requests(self, academic_year: Optional[str] = None,
                             teacher_id: Optional[str] = None,
                             batch_id: Optional[str] = None) -> List[ChangeRequestEntry]:
        return [
            copy.deepcopy(e) for e in self._change_requests.values()
            if (academic_year is None or e.key.academic_year == academic_year)
            and (teacher_id is None or e.teacher_id == teacher_id)
            and (batch_id is None or e.batch_id == batch_id)
        ]


class BaseRepository:
    """基础仓库类"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def _handle_db_error(self, error: Exception, operation: str) -> None:
        """统一处理数据库异常，存储故障永远不会被当作记录不存在"""
        logger.error(f"Database error in {operation}: {str(error)}")
        try:
            self.db.rollback()
        except SQLAlchemyError as rollback_error:
            logger.warning(f"Rollback failed in {operation}: {str(rollback_error)}")

        if isinstance(error, IntegrityError):
            raise ConcurrentModification(f"并发写入冲突: {str(error)}")
        elif isinstance(error, (OperationalError, PoolTimeoutError, DisconnectionError)):
            raise StoreUnavailable(f"数据库暂时不可用: {str(error)}")
        else:
            raise StoreUnavailable(f"数据库操作失败: {str(error)}")


class SqlAlchemyGradeStore(BaseRepository, GradeStore):
    """基于SQLAlchemy的成绩存储"""

    @staticmethod
    def _key_filter(model, key: GradeKey):
        return and_(
            model.academic_year == key.academic_year,
            model.class_id == key.class_id,
            model.subject == key.subject,
            model.period == key.period,
            model.student_id == key.student_id,
        )

    @staticmethod
    def _record_columns(record: GradeRecord) -> Dict[str, Any]:
        review = record.review
        return {
            "academic_year": record.academic_year,
            "class_id": record.class_id,
            "subject": record.subject,
            "period": record.period,
            "student_id": record.student_id,
            "teacher_id": record.teacher_id,
            "student_name": record.student_name,
            "submission_id": record.submission_id,
            "grade": record.grade,
            "status": record.status.value,
            "rejection_reason": record.rejection_reason,
            "submitted_at": record.submitted_at,
            "last_updated": record.last_updated,
            "review_previous_grade": review.previous_grade if review else None,
            "review_previous_status": review.previous_status.value if review else None,
            "review_previous_rejection_reason": review.previous_rejection_reason if review else None,
            "review_proposed_grade": review.proposed_grade if review else None,
            "review_reason": review.reason if review else None,
            "review_request_id": review.request_id if review else None,
            "review_requested_at": review.requested_at if review else None,
        }

    @staticmethod
    def _to_record(row: GradeRecordModel) -> GradeRecord:
        review = None
        if row.review_proposed_grade is not None:
            review = ReviewState(
                previous_grade=row.review_previous_grade,
                previous_status=GradeStatus(row.review_previous_status),
                previous_rejection_reason=row.review_previous_rejection_reason,
                proposed_grade=row.review_proposed_grade,
                reason=row.review_reason,
                request_id=row.review_request_id,
                requested_at=row.review_requested_at,
            )
        return GradeRecord(
            academic_year=row.academic_year,
            class_id=row.class_id,
            subject=row.subject,
            period=row.period,
            student_id=row.student_id,
            teacher_id=row.teacher_id,
            student_name=row.student_name,
            submission_id=row.submission_id,
            grade=row.grade,
            status=GradeStatus(row.status),
            rejection_reason=row.rejection_reason,
            submitted_at=row.submitted_at,
            last_updated=row.last_updated,
            review=review,
            version=row.version,
        )

    @staticmethod
    def _to_change_request(row: GradeChangeRequestModel) -> ChangeRequestEntry:
        return ChangeRequestEntry(
            request_id=row.request_id,
            batch_id=row.batch_id,
            submission_id=row.submission_id,
            key=GradeKey(
                academic_year=row.academic_year,
                class_id=row.class_id,
                subject=row.subject,
                period=row.period,
                student_id=row.student_id,
            ),
            teacher_id=row.teacher_id,
            student_name=row.student_name,
            original_grade=row.original_grade,
            original_status=GradeStatus(row.original_status),
            requested_grade=row.requested_grade,
            reason=row.reason,
            status=GradeStatus(row.status),
            admin_rejection_reason=row.admin_rejection_reason,
            submitted_at=row.submitted_at,
            resolved_at=row.resolved_at,
        )

    def get(self, key: GradeKey) -> Optional[GradeRecord]:
        try:
            row = self.db.query(GradeRecordModel).filter(
                self._key_filter(GradeRecordModel, key)
            ).first()
            return self._to_record(row) if row else None
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get")

    def find(self, query: GradeQuery) -> List[GradeRecord]:
        try:
            q = self.db.query(GradeRecordModel)

            # 应用筛选条件
            if query.academic_year is not None:
                q = q.filter(GradeRecordModel.academic_year == query.academic_year)
            if query.class_id is not None:
                q = q.filter(GradeRecordModel.class_id == query.class_id)
            if query.subject is not None:
                q = q.filter(GradeRecordModel.subject == query.subject)
            if query.teacher_id is not None:
                q = q.filter(GradeRecordModel.teacher_id == query.teacher_id)
            if query.period is not None:
                q = q.filter(GradeRecordModel.period == query.period)
            if query.student_ids:
                q = q.filter(GradeRecordModel.student_id.in_(query.student_ids))
            if query.statuses:
                q = q.filter(GradeRecordModel.status.in_([s.value for s in query.statuses]))

            return [self._to_record(row) for row in q.order_by(GradeRecordModel.id).all()]
        except SQLAlchemyError as e:
            self._handle_db_error(e, "find")

    def find_by_submission(self, submission_id: str, student_id: Optional[str] = None,
                           period: Optional[str] = None) -> List[GradeRecord]:
        try:
            q = self.db.query(GradeRecordModel).filter(GradeRecordModel.submission_id == submission_id)
            if student_id is not None:
                q = q.filter(GradeRecordModel.student_id == student_id)
            if period is not None:
                q = q.filter(GradeRecordModel.period == period)
            return [self._to_record(row) for row in q.order_by(GradeRecordModel.id).all()]
        except SQLAlchemyError as e:
            self._handle_db_error(e, "find_by_submission")

    def insert(self, record: GradeRecord) -> GradeRecord:
        record.check_invariants()
        try:
            exists = self.db.query(GradeRecordModel.id).filter(
                self._key_filter(GradeRecordModel, record.key)
            ).first()
            if exists is not None:
                raise ConcurrentModification(f"成绩记录已存在: {record.key}")

            row = GradeRecordModel(**self._record_columns(record), version=1)
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            return self._to_record(row)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "insert")

    def update(self, record: GradeRecord, expected_version: int) -> GradeRecord:
        record.check_invariants()
        key_filter = self._key_filter(GradeRecordModel, record.key)
        try:
            values = self._record_columns(record)
            values["version"] = expected_version + 1
            result = self.db.execute(
                update(GradeRecordModel)
                .where(key_filter, GradeRecordModel.version == expected_version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                exists = self.db.query(GradeRecordModel.id).filter(key_filter).first()
                if exists is None:
                    raise NotFound(f"成绩记录不存在: {record.key}")
                raise ConcurrentModification(
                    f"成绩记录已被修改: {record.key} (期望版本 {expected_version})"
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "update")
        return self.get(record.key)

    def add_history(self, entry: HistoryEntry) -> None:
        try:
            self.db.add(GradeHistoryModel(
                academic_year=entry.key.academic_year,
                class_id=entry.key.class_id,
                subject=entry.key.subject,
                period=entry.key.period,
                student_id=entry.key.student_id,
                submission_id=entry.submission_id,
                change_type=entry.change_type.value,
                grade=entry.grade,
                status=entry.status.value,
                rejection_reason=entry.rejection_reason,
                note=entry.note,
                recorded_at=entry.recorded_at,
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "add_history")

    def history(self, key: GradeKey) -> List[HistoryEntry]:
        try:
            rows = self.db.query(GradeHistoryModel).filter(
                self._key_filter(GradeHistoryModel, key)
            ).order_by(GradeHistoryModel.id).all()
            return [
                HistoryEntry(
                    key=key,
                    submission_id=row.submission_id,
                    change_type=ChangeType(row.change_type),
                    grade=row.grade,
                    status=GradeStatus(row.status),
                    rejection_reason=row.rejection_reason,
                    note=row.note,
                    recorded_at=row.recorded_at,
                )
                for row in rows
            ]
        except SQLAlchemyError as e:
            self._handle_db_error(e, "history")

    def add_change_request(self, entry: ChangeRequestEntry) -> ChangeRequestEntry:
        try:
            row = GradeChangeRequestModel(
                request_id=entry.request_id,
                batch_id=entry.batch_id,
                submission_id=entry.submission_id,
                academic_year=entry.key.academic_year,
                class_id=entry.key.class_id,
                subject=entry.key.subject,
                period=entry.key.period,
                student_id=entry.key.student_id,
                teacher_id=entry.teacher_id,
                student_name=entry.student_name,
                original_grade=entry.original_grade,
                original_status=entry.original_status.value,
                requested_grade=entry.requested_grade,
                reason=entry.reason,
                status=entry.status.value,
                admin_rejection_reason=entry.admin_rejection_reason,
                submitted_at=entry.submitted_at,
                resolved_at=entry.resolved_at,
            )
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            return self._to_change_request(row)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "add_change_request")

    def get_change_request(self, request_id: str) -> Optional[ChangeRequestEntry]:
        try:
            row = self.db.query(GradeChangeRequestModel).filter(
                GradeChangeRequestModel.request_id == request_id
            ).first()
            return self._to_change_request(row) if row else None
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_change_request")

    def update_change_request(self, entry: ChangeRequestEntry) -> ChangeRequestEntry:
        try:
            row = self.db.query(GradeChangeRequestModel).filter(
                GradeChangeRequestModel.request_id == entry.request_id
            ).first()
            if row is None:
                raise NotFound(f"成绩修改申请不存在: {entry.request_id}")
            row.status = entry.status.value
            row.admin_rejection_reason = entry.admin_rejection_reason
            row.resolved_at = entry.resolved_at
            self.db.commit()
            self.db.refresh(row)
            return self._to_change_request(row)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "update_change_request")

    def find_change_requests(self, academic_year: Optional[str] = None,
                             teacher_id: Optional[str] = None,
                             batch_id: Optional[str] = None) -> List[ChangeRequestEntry]:
        try:
            q = self.db.query(GradeChangeRequestModel)
            if academic_year is not None:
                q = q.filter(GradeChangeRequestModel.academic_year == academic_year)
            if teacher_id is not None:
                q = q.filter(GradeChangeRequestModel.teacher_id == teacher_id)
            if batch_id is not None:
                q = q.filter(GradeChangeRequestModel.batch_id == batch_id)
            return [self._to_change_request(row) for row in q.order_by(GradeChangeRequestModel.id).all()]
        except SQLAlchemyError as e:
            self._handle_db_error(e, "find_change_requests")
