# 数据库枚举定义
import enum


class GradeStatus(str, enum.Enum):
    """单条成绩状态枚举"""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class SubmissionStatus(str, enum.Enum):
    """提交批次（派生）状态枚举"""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PARTIALLY_APPROVED = "Partially Approved"


class Period(str, enum.Enum):
    """学年内固定的八个评分周期（六个常规周期 + 两次考试）"""
    FIRST_PERIOD = "firstPeriod"
    SECOND_PERIOD = "secondPeriod"
    THIRD_PERIOD = "thirdPeriod"
    THIRD_PERIOD_EXAM = "thirdPeriodExam"
    FOURTH_PERIOD = "fourthPeriod"
    FIFTH_PERIOD = "fifthPeriod"
    SIXTH_PERIOD = "sixthPeriod"
    SIXTH_PERIOD_EXAM = "sixthPeriodExam"


class ChangeType(enum.Enum):
    """成绩历史变更类型枚举"""
    CREATED = "created"
    RESUBMITTED = "resubmitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    REASON_CORRECTED = "reason_corrected"
    CHANGE_REQUESTED = "change_requested"
    CHANGE_APPROVED = "change_approved"
    CHANGE_REJECTED = "change_rejected"


class ReportType(str, enum.Enum):
    """报告类型枚举"""
    PERIODIC = "periodic"
    YEARLY = "yearly"
    MASTERS = "masters"
    GRADE_SUBMISSION = "gradeSubmission"
    ALL = "all"


# 周期的规范顺序
PERIOD_ORDER = [p.value for p in Period]

# 学期与周期的对应关系
FIRST_SEMESTER_PERIODS = (
    Period.FIRST_PERIOD.value,
    Period.SECOND_PERIOD.value,
    Period.THIRD_PERIOD.value,
    Period.THIRD_PERIOD_EXAM.value,
)
SECOND_SEMESTER_PERIODS = (
    Period.FOURTH_PERIOD.value,
    Period.FIFTH_PERIOD.value,
    Period.SIXTH_PERIOD.value,
    Period.SIXTH_PERIOD_EXAM.value,
)
