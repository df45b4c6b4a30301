# 计算器模块
from .period_stats_calculator import PeriodStats, PeriodStatsCalculator
from .semester_calculator import SemesterAggregator, overall_subject_average
from .yearly_calculator import YearlyAggregator
from .rank_calculator import RankEngine

__all__ = [
    'PeriodStats',
    'PeriodStatsCalculator',
    'SemesterAggregator',
    'overall_subject_average',
    'YearlyAggregator',
    'RankEngine'
]
