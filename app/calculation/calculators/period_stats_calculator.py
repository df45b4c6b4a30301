# 周期成绩统计计算器
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..formulas import PASS_MARK, null_excluding_mean, to_grade_series
from ...database.schemas import GradeRecord
from ...utils.precision_handler import format_decimal

logger = logging.getLogger(__name__)


@dataclass
class PeriodStats:
    """单个提交或单个周期的统计结果"""
    total_students: int
    passes: int
    fails: int
    incompletes: int
    average: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalStudents": self.total_students,
            "passes": self.passes,
            "fails": self.fails,
            "incompletes": self.incompletes,
            "average": self.average,
        }


class PeriodStatsCalculator:
    """
    周期统计计算器

    - 空成绩计入总人数和未完成人数，不计入及格、不及格和平均分
    - 及格线含70分
    - 没有有效成绩时平均分为 0（通过 total_students == 0 区分“无数据”）
    """

    def calculate(self, grades: Iterable[Optional[int]]) -> PeriodStats:
        """根据成绩列表计算统计结果"""
        series = to_grade_series(grades)
        valid = series.dropna()

        total_students = int(len(series))
        passes = int((valid >= PASS_MARK).sum())
        fails = int(len(valid)) - passes
        incompletes = total_students - int(len(valid))

        mean = null_excluding_mean(valid)
        average = format_decimal(mean) if mean is not None else 0.0

        return PeriodStats(
            total_students=total_students,
            passes=passes,
            fails=fails,
            incompletes=incompletes,
            average=average,
        )

    def calculate_for_records(self, records: Iterable[GradeRecord]) -> PeriodStats:
        """根据成绩记录计算统计结果"""
        return self.calculate(r.grade for r in records)

    def calculate_by_period(self, records: Iterable[GradeRecord],
                            periods: List[str]) -> Dict[str, PeriodStats]:
        """按周期分别计算统计结果，没有记录的周期也会返回（全为0）"""
        records = list(records)
        return {
            period: self.calculate(r.grade for r in records if r.period == period)
            for period in periods
        }
