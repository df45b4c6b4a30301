# 学年工具
from datetime import date, datetime
from typing import Optional, Union

from ..config import ACADEMIC_YEAR_START_MONTH


def current_academic_year(today: Optional[Union[date, datetime]] = None,
                          start_month: int = ACADEMIC_YEAR_START_MONTH) -> str:
    """获取当前学年，例如 2024年9月 => "2024/2025"，2025年3月 => "2024/2025" """
    today = today or date.today()
    if today.month >= start_month:
        return f"{today.year}/{today.year + 1}"
    return f"{today.year - 1}/{today.year}"
