# 排名计算器
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from ..formulas import to_grade_series

logger = logging.getLogger(__name__)


class RankEngine:
    """
    竞赛排名（standard competition ranking）

    - 空值不参与排名，排名为 None（显示为 "-"）
    - 按数值降序排名，并列名次相同，后续名次跳过（90, 90, 80 => 1, 1, 3）
    """

    @staticmethod
    def rank_values(values: Sequence[Optional[float]]) -> List[Optional[int]]:
        """按输入顺序返回每个值的排名"""
        if not values:
            return []
        ranks = to_grade_series(values).rank(method="min", ascending=False, na_option="keep")
        return [None if pd.isna(r) else int(r) for r in ranks]

    def rank(self, entries: Sequence[Tuple[str, Optional[float]]]) -> Dict[str, Optional[int]]:
        """对 (studentId, value) 列表排名"""
        ranks = self.rank_values([value for _, value in entries])
        return {student_id: r for (student_id, _), r in zip(entries, ranks)}

    def rank_columns(self, rows: Mapping[str, Mapping[str, Optional[float]]],
                     columns: Sequence[str]) -> Dict[str, Dict[str, Optional[int]]]:
        """
        对多个列分别独立排名

        Args:
            rows: {studentId: {列名: 值}}
            columns: 需要排名的列

        Returns:
            {studentId: {列名: 排名}}
        """
        result: Dict[str, Dict[str, Optional[int]]] = {student_id: {} for student_id in rows}
        for column in columns:
            column_ranks = self.rank([(sid, values.get(column)) for sid, values in rows.items()])
            for student_id, r in column_ranks.items():
                result[student_id][column] = r
        return result
