# 年度平均分计算器
import logging
from typing import Mapping, Optional

from ..formulas import rounded_mean
from ...utils.precision_handler import format_decimal

logger = logging.getLogger(__name__)


class YearlyAggregator:
    """年度平均分聚合器"""

    @staticmethod
    def class_semester_average(subject_averages: Mapping[str, Optional[float]]) -> Optional[float]:
        """班级层面的学期平均分：各科目学期平均分的均值"""
        return rounded_mean(subject_averages.values())

    @staticmethod
    def upstream_yearly_average(yearly_subject_averages: Mapping[str, Optional[float]]) -> Optional[float]:
        """报表上游已有的年度平均分：各科目全年平均分的均值"""
        return rounded_mean(yearly_subject_averages.values())

    @staticmethod
    def yearly_average(first_semester_average: Optional[float],
                       second_semester_average: Optional[float],
                       upstream: Optional[float] = None) -> Optional[float]:
        """
        学生年度平均分

        两个班级层面的学期平均分都存在时取二者均值；
        否则沿用上游报表已计算的值（可能为 None），不做推测
        """
        if first_semester_average is None or second_semester_average is None:
            return upstream
        return format_decimal((first_semester_average + second_semester_average) / 2)
