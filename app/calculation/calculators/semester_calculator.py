# 学期平均分计算器
import logging
from typing import Dict, Mapping, Optional, Sequence, Tuple

from ..formulas import null_excluding_mean
from ...database.enums import FIRST_SEMESTER_PERIODS, SECOND_SEMESTER_PERIODS
from ...utils.precision_handler import round_half_up

logger = logging.getLogger(__name__)


def overall_subject_average(first_semester: Optional[float],
                            second_semester: Optional[float]) -> Optional[int]:
    """科目全年平均分：两个学期平均分都存在时取均值并四舍五入到整数，否则为 None"""
    if first_semester is None or second_semester is None:
        return None
    return round_half_up((first_semester + second_semester) / 2)


class SemesterAggregator:
    """学期平均分聚合器（第1-3周期+期中考试为第一学期，第4-6周期+期末考试为第二学期）"""

    def __init__(self,
                 first_periods: Sequence[str] = FIRST_SEMESTER_PERIODS,
                 second_periods: Sequence[str] = SECOND_SEMESTER_PERIODS):
        self.first_periods = list(first_periods)
        self.second_periods = list(second_periods)

    @staticmethod
    def semester_average(period_grades: Mapping[str, Optional[int]],
                         periods: Sequence[str]) -> Optional[float]:
        """学期内非空周期成绩的平均分（不取舍，报表输出时再保留1位小数），全部为空时返回 None 而不是 0"""
        return null_excluding_mean(period_grades.get(p) for p in periods)

    def first_semester_average(self, period_grades: Mapping[str, Optional[int]]) -> Optional[float]:
        return self.semester_average(period_grades, self.first_periods)

    def second_semester_average(self, period_grades: Mapping[str, Optional[int]]) -> Optional[float]:
        return self.semester_average(period_grades, self.second_periods)

    def subject_averages(
        self, grades_by_subject: Mapping[str, Mapping[str, Optional[int]]]
    ) -> Tuple[Dict[str, Optional[float]], Dict[str, Optional[float]], Dict[str, Optional[float]]]:
        """
        计算每个科目的学期平均分和全年平均分

        Args:
            grades_by_subject: {科目: {周期: 成绩}}

        Returns:
            (第一学期平均分, 第二学期平均分, 科目全年平均分)
            均为未取舍的值；科目全年平均分由未取舍的学期平均分计算
            只有一个学期有成绩时，全年平均分取该学期的平均分
        """
        first: Dict[str, Optional[float]] = {}
        second: Dict[str, Optional[float]] = {}
        yearly: Dict[str, Optional[float]] = {}

        for subject, period_grades in grades_by_subject.items():
            first[subject] = self.first_semester_average(period_grades)
            second[subject] = self.second_semester_average(period_grades)

            if first[subject] is not None and second[subject] is not None:
                yearly[subject] = overall_subject_average(first[subject], second[subject])
            elif first[subject] is not None:
                yearly[subject] = first[subject]
            else:
                yearly[subject] = second[subject]

        return first, second, yearly
