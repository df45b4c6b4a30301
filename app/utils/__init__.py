# 工具模块
from .precision_handler import (
    format_decimal,
    round_half_up,
    AVERAGE_DECIMAL_PLACES,
)
from .academic_year import current_academic_year

__all__ = [
    'format_decimal',
    'round_half_up',
    'AVERAGE_DECIMAL_PLACES',
    'current_academic_year',
]
