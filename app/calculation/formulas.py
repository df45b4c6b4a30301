# 成绩统计基础公式
import logging
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from ..utils.precision_handler import format_decimal

logger = logging.getLogger(__name__)

# 及格线（含70分），固定的领域常量
PASS_MARK = 70


def to_grade_series(values: Iterable[Optional[float]]) -> pd.Series:
    """将成绩序列转换为 float64 Series，None 转换为 NaN"""
    return pd.Series(list(values), dtype="float64")


def null_excluding_mean(values: Iterable[Optional[float]]) -> Optional[float]:
    """
    计算非空值的算术平均数

    Returns:
        平均数；没有有效值时返回 None（由调用方决定默认值）
    """
    valid = to_grade_series(values).dropna()
    if valid.empty:
        return None
    return float(valid.mean())


def rounded_mean(values: Iterable[Optional[float]]) -> Optional[float]:
    """非空值平均数，保留1位小数；没有有效值时返回 None"""
    mean = null_excluding_mean(values)
    return format_decimal(mean) if mean is not None else None


def is_passing(grade: Optional[float]) -> bool:
    """是否及格（grade >= 70）；空成绩既不算及格也不算不及格"""
    if grade is None:
        return False
    if isinstance(grade, float) and np.isnan(grade):
        return False
    return grade >= PASS_MARK
