# 数值精度处理工具
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

import numpy as np

logger = logging.getLogger(__name__)

# 平均分默认保留1位小数
AVERAGE_DECIMAL_PLACES = 1


def format_decimal(value: Union[float, int, None],
                   decimal_places: int = AVERAGE_DECIMAL_PLACES) -> Optional[float]:
    """
    格式化数值到指定小数位数（四舍五入，0.5进位）

    Args:
        value: 需要格式化的数值
        decimal_places: 小数位数

    Returns:
        格式化后的浮点数，None/NaN/无穷大返回None
    """
    if value is None:
        return None

    if not isinstance(value, (int, float, Decimal, np.integer, np.floating)):
        logger.warning(f"数值格式化失败，类型不支持: {value!r}")
        return None

    if isinstance(value, (float, np.floating)) and (np.isnan(value) or np.isinf(value)):
        return None

    # 使用Decimal进行精确计算，避免浮点数精度问题
    decimal_value = Decimal(str(value))
    quantum = Decimal(1).scaleb(-decimal_places) if decimal_places > 0 else Decimal(1)
    return float(decimal_value.quantize(quantum, rounding=ROUND_HALF_UP))


def round_half_up(value: Union[float, int, None]) -> Optional[int]:
    """四舍五入到整数（72.5 => 73）"""
    formatted = format_decimal(value, 0)
    if formatted is None:
        return None
    return int(formatted)
