# 成绩报告服务
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..calculation.calculators import (
    PeriodStatsCalculator, RankEngine, SemesterAggregator, YearlyAggregator
)
from ..calculation.formulas import rounded_mean
from ..database.enums import PERIOD_ORDER, GradeStatus, ReportType
from ..database.repositories import GradeStore
from ..database.schemas import GradeQuery, GradeRecord
from ..exceptions import NotFound, ValidationError
from ..utils.academic_year import current_academic_year
from ..utils.precision_handler import format_decimal
from .submission_service import SubmissionGrouper

logger = logging.getLogger(__name__)

FIRST_SEMESTER_COLUMN = "firstSemesterAverage"
SECOND_SEMESTER_COLUMN = "secondSemesterAverage"
YEARLY_COLUMN = "yearlyAverage"

ReportData = Union[Dict[str, Any], List[Dict[str, Any]], None]


@dataclass
class ReportQuery:
    """报告查询条件"""
    academic_year: Optional[str] = None
    class_id: Optional[str] = None
    subject: Optional[str] = None
    teacher_id: Optional[str] = None
    student_ids: Optional[List[str]] = None
    period: Optional[str] = None
    report_type: Optional[str] = None


def _single_or_list(rows: List[Dict[str, Any]], student_ids: Optional[List[str]]) -> ReportData:
    """排名计算完成后再按学生过滤；只查询一个学生时返回单个对象"""
    if not student_ids:
        return rows
    wanted = set(student_ids)
    rows = [row for row in rows if row["studentId"] in wanted]
    if len(student_ids) == 1:
        return rows[0] if rows else None
    return rows


def _rounded_values(values: Dict[str, Optional[float]]) -> Dict[str, Optional[float]]:
    return {k: format_decimal(v) for k, v in values.items()}


def _rank_sort_key(rank: Optional[int]):
    # 无排名的排在最后
    return (rank is None, rank or 0)


class ReportingService:
    """
    成绩报告服务

    报告都是根据当前成绩实时计算的视图，不做缓存。周期报告和年度报告只使用已审核通过的成绩。
    """

    def __init__(self, store: GradeStore,
                 stats_calculator: Optional[PeriodStatsCalculator] = None,
                 semester_aggregator: Optional[SemesterAggregator] = None,
                 yearly_aggregator: Optional[YearlyAggregator] = None,
                 rank_engine: Optional[RankEngine] = None):
        self.store = store
        self.stats_calculator = stats_calculator or PeriodStatsCalculator()
        self.semester_aggregator = semester_aggregator or SemesterAggregator()
        self.yearly_aggregator = yearly_aggregator or YearlyAggregator()
        self.rank_engine = rank_engine or RankEngine()

    # ------------------------------------------------------------------
    # 报告分发
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_report_type(query: ReportQuery) -> ReportType:
        """确定报告类型：显式指定优先，否则 period => 周期报告，subject => 成绩总表，其余为年度报告"""
        if query.report_type:
            try:
                return ReportType(query.report_type)
            except ValueError:
                raise ValidationError(f"无效的报告类型: {query.report_type}", field="reportType")
        if not query.class_id and not query.student_ids:
            return ReportType.ALL
        if query.period:
            return ReportType.PERIODIC
        if query.subject:
            return ReportType.MASTERS
        return ReportType.YEARLY

    def generate(self, query: ReportQuery) -> Dict[str, Any]:
        """根据查询条件生成报告"""
        academic_year = query.academic_year or current_academic_year()
        report_type = self.resolve_report_type(query)
        logger.info(f"Generating {report_type.value} report for {academic_year}")

        if report_type == ReportType.ALL:
            data = self.all_grades_report(
                academic_year,
                class_id=query.class_id,
                subject=query.subject,
                teacher_id=query.teacher_id,
                period=query.period,
                student_ids=query.student_ids,
            )
        elif report_type == ReportType.GRADE_SUBMISSION:
            if not query.teacher_id:
                raise ValidationError("提交报告需要 teacherId", field="teacherId")
            data = self.submission_report(query.teacher_id, academic_year)
        else:
            class_id = query.class_id or self._resolve_class(academic_year, query.student_ids)
            if report_type == ReportType.PERIODIC:
                data = self.periodic_report(academic_year, class_id, query.period, query.student_ids)
            elif report_type == ReportType.MASTERS:
                data = self.masters_report(
                    academic_year, class_id, query.subject, query.teacher_id, query.student_ids
                )
            else:
                data = self.yearly_report(academic_year, class_id, query.student_ids)

        return {"reportType": report_type.value, "academicYear": academic_year, "report": data}

    def _resolve_class(self, academic_year: str, student_ids: Optional[List[str]]) -> str:
        """未指定班级时，根据第一个学生的成绩记录确定班级"""
        if not student_ids:
            raise ValidationError("需要 classId 或 studentIds", field="classId")
        records = self.store.find(GradeQuery(academic_year=academic_year, student_ids=[student_ids[0]]))
        if not records:
            raise NotFound(f"学生 {student_ids[0]} 在 {academic_year} 学年没有成绩记录")
        return records[0].class_id

    # ------------------------------------------------------------------
    # 各类报告
    # ------------------------------------------------------------------

    def all_grades_report(self, academic_year: str, class_id: Optional[str] = None,
                          subject: Optional[str] = None, teacher_id: Optional[str] = None,
                          period: Optional[str] = None,
                          student_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        """学年内全部成绩记录（所有状态）"""
        records = self.store.find(GradeQuery(
            academic_year=academic_year,
            class_id=class_id,
            subject=subject,
            teacher_id=teacher_id,
            period=period,
            student_ids=student_ids,
        ))
        return {
            "academicYear": academic_year,
            "totalRecords": len(records),
            "grades": [r.to_dict() for r in records],
        }

    def submission_report(self, teacher_id: str, academic_year: str) -> Dict[str, Any]:
        """教师的全部提交批次，最近更新的在前"""
        records = self.store.find(GradeQuery(academic_year=academic_year, teacher_id=teacher_id))
        submissions = list(SubmissionGrouper(self.stats_calculator).group(records).values())
        submissions.sort(key=lambda s: s.last_updated or datetime.min, reverse=True)
        return {
            "teacherId": teacher_id,
            "academicYear": academic_year,
            "submissions": [s.to_dict(self.stats_calculator) for s in submissions],
        }

    def periodic_report(self, academic_year: str, class_id: str, period: Optional[str],
                        student_ids: Optional[List[str]] = None) -> ReportData:
        """班级单个周期的报告：每个学生各科成绩、周期平均分、及格统计和班级排名"""
        if period not in PERIOD_ORDER:
            raise ValidationError(f"无效的周期: {period}", field="period")

        records = self._approved(academic_year, class_id, period=period)
        students: Dict[str, Dict[str, Any]] = {}
        for record in records:
            student = students.setdefault(record.student_id, {
                "studentName": record.student_name,
                "subjects": {},
            })
            student["subjects"][record.subject] = record.grade

        rows = []
        for student_id, student in students.items():
            grades = list(student["subjects"].values())
            stats = self.stats_calculator.calculate(grades)
            rows.append({
                "studentId": student_id,
                "studentName": student["studentName"],
                "subjects": [{"subject": s, "grade": g} for s, g in student["subjects"].items()],
                "periodicAverage": rounded_mean(grades),
                "passes": stats.passes,
                "fails": stats.fails,
                "incompletes": stats.incompletes,
            })

        # 全班排名，之后才按学生过滤
        ranks = self.rank_engine.rank([(row["studentId"], row["periodicAverage"]) for row in rows])
        for row in rows:
            row["rank"] = ranks[row["studentId"]]
        rows.sort(key=lambda row: _rank_sort_key(row["rank"]))

        return _single_or_list(rows, student_ids)

    def masters_report(self, academic_year: str, class_id: str, subject: Optional[str],
                       teacher_id: Optional[str] = None,
                       student_ids: Optional[List[str]] = None) -> Dict[str, Any]:
        """班级单科成绩总表：各周期成绩及状态，统计只使用已审核通过的成绩"""
        if not subject:
            raise ValidationError("成绩总表需要 subject", field="subject")

        records = self.store.find(GradeQuery(
            academic_year=academic_year,
            class_id=class_id,
            subject=subject,
            teacher_id=teacher_id,
        ))
        approved = [r for r in records if r.status == GradeStatus.APPROVED]

        students: Dict[str, Dict[str, Any]] = {}
        for record in records:
            student = students.setdefault(record.student_id, {
                "studentId": record.student_id,
                "studentName": record.student_name,
                "periods": {},
            })
            student["periods"][record.period] = {
                "grade": record.grade,
                "status": record.status.value,
                "underReview": record.is_under_review,
            }

        for student_id, student in students.items():
            student["overallAverage"] = rounded_mean(
                r.grade for r in approved if r.student_id == student_id
            )

        rows = list(students.values())
        if student_ids:
            wanted = set(student_ids)
            rows = [row for row in rows if row["studentId"] in wanted]

        present = {r.period for r in records}
        periods = [p for p in PERIOD_ORDER if p in present]
        period_stats = {
            period: stats.to_dict()
            for period, stats in self.stats_calculator.calculate_by_period(approved, periods).items()
        }

        return {
            "subject": subject,
            "teacherId": teacher_id,
            "classId": class_id,
            "students": rows,
            "periodStats": period_stats,
        }

    def yearly_report(self, academic_year: str, class_id: str,
                      student_ids: Optional[List[str]] = None) -> ReportData:
        """班级年度报告：各周期成绩、学期平均分、年度平均分和各项排名"""
        records = self._approved(academic_year, class_id)

        students: Dict[str, Dict[str, Any]] = {}
        for record in records:
            student = students.setdefault(record.student_id, {
                "studentName": record.student_name,
                "grades": {},
            })
            student["grades"].setdefault(record.subject, {})[record.period] = record.grade

        present = {r.period for r in records}
        class_periods = [p for p in PERIOD_ORDER if p in present]

        rows = []
        for student_id, student in students.items():
            grades_by_subject = student["grades"]
            first, second, yearly_subject = self.semester_aggregator.subject_averages(grades_by_subject)

            periods: Dict[str, List[Dict[str, Any]]] = {}
            period_averages: Dict[str, Optional[float]] = {}
            for period in class_periods:
                entries = [
                    {"subject": subject, "grade": period_grades[period]}
                    for subject, period_grades in grades_by_subject.items()
                    if period in period_grades
                ]
                if entries:
                    periods[period] = entries
                    period_averages[period] = rounded_mean(e["grade"] for e in entries)

            period_averages[FIRST_SEMESTER_COLUMN] = self.yearly_aggregator.class_semester_average(first)
            period_averages[SECOND_SEMESTER_COLUMN] = self.yearly_aggregator.class_semester_average(second)
            yearly_average = self.yearly_aggregator.yearly_average(
                period_averages[FIRST_SEMESTER_COLUMN],
                period_averages[SECOND_SEMESTER_COLUMN],
                upstream=self.yearly_aggregator.upstream_yearly_average(yearly_subject),
            )
            period_averages[YEARLY_COLUMN] = yearly_average

            rows.append({
                "studentId": student_id,
                "studentName": student["studentName"],
                "periods": periods,
                FIRST_SEMESTER_COLUMN: _rounded_values(first),
                SECOND_SEMESTER_COLUMN: _rounded_values(second),
                "yearlySubjectAverages": _rounded_values(yearly_subject),
                "periodAverages": period_averages,
                YEARLY_COLUMN: yearly_average,
            })

        # 各周期、两个学期和全年分别独立排名
        rank_columns = class_periods + [FIRST_SEMESTER_COLUMN, SECOND_SEMESTER_COLUMN]
        ranks = self.rank_engine.rank_columns(
            {row["studentId"]: row["periodAverages"] for row in rows}, rank_columns
        )
        yearly_ranks = self.rank_engine.rank([(row["studentId"], row[YEARLY_COLUMN]) for row in rows])
        for row in rows:
            row["ranks"] = ranks[row["studentId"]]
            row["ranks"]["yearly"] = yearly_ranks[row["studentId"]]
        rows.sort(key=lambda row: _rank_sort_key(row["ranks"]["yearly"]))

        return _single_or_list(rows, student_ids)

    def _approved(self, academic_year: str, class_id: str,
                  period: Optional[str] = None) -> List[GradeRecord]:
        return self.store.find(GradeQuery(
            academic_year=academic_year,
            class_id=class_id,
            period=period,
            statuses=[GradeStatus.APPROVED],
        ))
