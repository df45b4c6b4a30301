# 工具函数测试
from datetime import date

import numpy as np
import pytest

from app.utils.academic_year import current_academic_year
from app.utils.precision_handler import format_decimal, round_half_up


class TestPrecisionHandler:
    """测试数值精度处理"""

    @pytest.mark.parametrize("value,expected", [
        (67.5, 67.5),
        (80.66666, 80.7),
        (70.75, 70.8),
        (72.45, 72.5),
        (0, 0.0),
    ])
    def test_format_decimal(self, value, expected):
        assert format_decimal(value) == expected

    def test_invalid_values(self):
        assert format_decimal(None) is None
        assert format_decimal(float("nan")) is None
        assert format_decimal(np.inf) is None
        assert format_decimal("80") is None

    def test_round_half_up(self):
        """四舍五入，0.5进位（不是银行家舍入）"""
        assert round_half_up(72.5) == 73
        assert round_half_up(73.5) == 74
        assert round_half_up(72.4) == 72
        assert round_half_up(None) is None


class TestAcademicYear:
    """测试学年计算（8月开始新学年）"""

    def test_after_august(self):
        assert current_academic_year(date(2024, 9, 1)) == "2024/2025"
        assert current_academic_year(date(2024, 8, 1)) == "2024/2025"

    def test_before_august(self):
        assert current_academic_year(date(2025, 3, 15)) == "2024/2025"
        assert current_academic_year(date(2025, 7, 31)) == "2024/2025"

    def test_custom_start_month(self):
        assert current_academic_year(date(2025, 7, 1), start_month=7) == "2025/2026"
