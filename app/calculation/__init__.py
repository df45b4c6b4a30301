# 成绩统计计算模块
from .formulas import PASS_MARK, null_excluding_mean, rounded_mean, is_passing
from .calculators import (
    PeriodStats,
    PeriodStatsCalculator,
    SemesterAggregator,
    overall_subject_average,
    YearlyAggregator,
    RankEngine
)

__all__ = [
    'PASS_MARK',
    'null_excluding_mean',
    'rounded_mean',
    'is_passing',
    'PeriodStats',
    'PeriodStatsCalculator',
    'SemesterAggregator',
    'overall_subject_average',
    'YearlyAggregator',
    'RankEngine'
]
