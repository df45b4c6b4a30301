# SQLAlchemy模型定义
from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, Index

from .connection import Base


class GradeRecordModel(Base):
    """成绩记录模型，每个 (学年, 班级, 科目, 周期, 学生) 只有一条有效记录"""
    __tablename__ = "grade_records"
    __table_args__ = (
        UniqueConstraint(
            "academic_year", "class_id", "subject", "period", "student_id",
            name="uq_grade_records_key"
        ),
        Index("ix_grade_records_class", "academic_year", "class_id"),
        Index("ix_grade_records_teacher", "academic_year", "teacher_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    academic_year = Column(String(20), nullable=False)
    class_id = Column(String(100), nullable=False)
    subject = Column(String(100), nullable=False)
    period = Column(String(30), nullable=False)
    student_id = Column(String(100), nullable=False)
    teacher_id = Column(String(100), nullable=False)
    student_name = Column(String(255), nullable=False)
    submission_id = Column(String(100), nullable=False, index=True)
    grade = Column(Integer, nullable=True)                   # NULL 表示未完成
    status = Column(String(20), nullable=False)
    rejection_reason = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=False)
    last_updated = Column(DateTime, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    # 修改申请审核中的状态
    review_previous_grade = Column(Integer, nullable=True)
    review_previous_status = Column(String(20), nullable=True)
    review_previous_rejection_reason = Column(Text, nullable=True)
    review_proposed_grade = Column(Integer, nullable=True)
    review_reason = Column(Text, nullable=True)
    review_request_id = Column(String(100), nullable=True)
    review_requested_at = Column(DateTime, nullable=True)


class GradeHistoryModel(Base):
    """成绩历史模型（只追加）"""
    __tablename__ = "grade_history"
    __table_args__ = (
        Index(
            "ix_grade_history_key",
            "academic_year", "class_id", "subject", "period", "student_id"
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    academic_year = Column(String(20), nullable=False)
    class_id = Column(String(100), nullable=False)
    subject = Column(String(100), nullable=False)
    period = Column(String(30), nullable=False)
    student_id = Column(String(100), nullable=False)
    submission_id = Column(String(100), nullable=False)
    change_type = Column(String(30), nullable=False)
    grade = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False)
    rejection_reason = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    recorded_at = Column(DateTime, nullable=False)


class GradeChangeRequestModel(Base):
    """成绩修改申请模型"""
    __tablename__ = "grade_change_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String(100), nullable=False, unique=True)
    batch_id = Column(String(100), nullable=False, index=True)
    submission_id = Column(String(100), nullable=False)
    academic_year = Column(String(20), nullable=False, index=True)
    class_id = Column(String(100), nullable=False)
    subject = Column(String(100), nullable=False)
    period = Column(String(30), nullable=False)
    student_id = Column(String(100), nullable=False, index=True)
    teacher_id = Column(String(100), nullable=False, index=True)
    student_name = Column(String(255), nullable=False)
    original_grade = Column(Integer, nullable=True)
    original_status = Column(String(20), nullable=False)
    requested_grade = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, index=True)
    admin_rejection_reason = Column(Text, nullable=True)
    submitted_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
