# API依赖注入
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from app.database.connection import get_db
from app.database.repositories import GradeStore, SqlAlchemyGradeStore


def get_grade_store(db: Session = Depends(get_db)) -> GradeStore:
    """每个请求使用独立的数据库会话"""
    return SqlAlchemyGradeStore(db)


def parse_student_ids(student_ids: Optional[str]) -> Optional[List[str]]:
    """解析逗号分隔的学生ID列表"""
    if not student_ids:
        return None
    ids = [s.strip() for s in student_ids.split(",") if s.strip()]
    return ids or None


def success_response(data: Any, message: str = "success", code: int = 200) -> Dict[str, Any]:
    return {
        "success": True,
        "code": code,
        "message": message,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
