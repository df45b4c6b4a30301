# 学期与年度平均分聚合器测试
import pytest

from app.calculation.calculators.semester_calculator import SemesterAggregator, overall_subject_average
from app.calculation.calculators.yearly_calculator import YearlyAggregator


class TestSemesterAggregator:
    """测试学期平均分"""

    def setup_method(self):
        self.aggregator = SemesterAggregator()

    def test_all_null_semester_is_none(self):
        """学期内成绩全部为空时返回None，而不是0"""
        grades = {"firstPeriod": None, "secondPeriod": None, "thirdPeriod": None}
        assert self.aggregator.first_semester_average(grades) is None

    def test_missing_periods_are_excluded(self):
        """缺失的周期和空成绩都不参与平均"""
        grades = {"firstPeriod": 70, "secondPeriod": None, "thirdPeriod": 90}
        assert self.aggregator.first_semester_average(grades) == 80

    def test_exam_is_part_of_semester(self):
        """考试周期属于对应学期"""
        grades = {"firstPeriod": 80, "secondPeriod": 80, "thirdPeriod": 80, "thirdPeriodExam": 60}
        assert self.aggregator.first_semester_average(grades) == 75

    def test_second_semester_ignores_first_semester_periods(self):
        """第二学期只使用第4-6周期和期末考试"""
        grades = {"firstPeriod": 100, "fourthPeriod": 70, "sixthPeriodExam": 75}
        assert self.aggregator.second_semester_average(grades) == 72.5
        assert self.aggregator.first_semester_average(grades) == 100

    def test_subject_averages_with_fallback(self):
        """只有一个学期有成绩时，全年平均分取该学期平均分"""
        first, second, yearly = self.aggregator.subject_averages({
            "Math": {"firstPeriod": 70, "fourthPeriod": 75},
            "English": {"firstPeriod": 88},
            "Science": {"fifthPeriod": 64},
            "Art": {"firstPeriod": None},
        })
        assert first == {"Math": 70, "English": 88, "Science": None, "Art": None}
        assert second == {"Math": 75, "English": None, "Science": 64, "Art": None}
        assert yearly["Math"] == 73
        assert yearly["English"] == 88
        assert yearly["Science"] == 64
        assert yearly["Art"] is None

    def test_overall_average_uses_unrounded_semester_means(self):
        """全年平均分由未取舍的学期平均分计算：(70.25 + 70.667) / 2 = 70.46 => 70"""
        first, second, yearly = self.aggregator.subject_averages({
            "Math": {
                "firstPeriod": 70, "secondPeriod": 70, "thirdPeriod": 70, "thirdPeriodExam": 71,
                "fourthPeriod": 70, "fifthPeriod": 71, "sixthPeriod": 71,
            },
        })
        assert first["Math"] == 70.25
        assert second["Math"] == pytest.approx(70.667, abs=1e-3)
        assert yearly["Math"] == 70


class TestOverallSubjectAverage:
    """测试科目全年平均分"""

    def test_round_half_up(self):
        """(70 + 75) / 2 = 72.5 => 73"""
        assert overall_subject_average(70, 75) == 73

    def test_requires_both_semesters(self):
        """任一学期为空则结果为空"""
        assert overall_subject_average(None, 75) is None
        assert overall_subject_average(70, None) is None
        assert overall_subject_average(None, None) is None

    def test_rounds_down_below_half(self):
        assert overall_subject_average(70.2, 70.4) == 70


class TestYearlyAggregator:
    """测试年度平均分"""

    def setup_method(self):
        self.aggregator = YearlyAggregator()

    def test_mean_of_class_semester_averages(self):
        """两个学期平均分都存在时取均值"""
        assert self.aggregator.yearly_average(80.0, 85.0) == 82.5

    def test_propagates_upstream_when_incomplete(self):
        """学期平均分不完整时沿用上游值，不做推测"""
        assert self.aggregator.yearly_average(80.0, None, upstream=79.5) == 79.5
        assert self.aggregator.yearly_average(None, None) is None

    def test_class_semester_average(self):
        """班级层面学期平均分是各科目学期平均分的均值（忽略空值）"""
        assert self.aggregator.class_semester_average({"Math": 70, "English": 81, "Art": None}) == 75.5
        assert self.aggregator.class_semester_average({"Math": None}) is None

    def test_upstream_yearly_average(self):
        assert self.aggregator.upstream_yearly_average({"Math": 73, "English": 88}) == 80.5
        assert self.aggregator.upstream_yearly_average({}) is None
