# 成绩修改申请API
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.dependencies import get_grade_store, success_response
from app.database.repositories import GradeStore
from app.exceptions import GradeEngineError
from app.schemas.request_schemas import GradeChangeRequestCreate, GradeChangeRequestResolve
from app.schemas.response_schemas import ApiResponse
from app.services.change_request_service import ChangeRequestProcessor, GradeChange

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/grades/change-requests", tags=["成绩修改申请API"])


@router.post("", response_model=ApiResponse, status_code=201)
def create_change_request(request: GradeChangeRequestCreate, store: GradeStore = Depends(get_grade_store)):
    """教师提交成绩修改申请"""
    try:
        processor = ChangeRequestProcessor(store)
        result = processor.submit_change_request(
            submission_id=request.submission_id,
            reason=request.reason,
            changes=[GradeChange(student_id=c.student_id, new_grade=c.new_grade) for c in request.changes],
            period=request.period,
            teacher_id=request.teacher_id,
        )
        return success_response(
            result.to_dict(),
            message=f"{len(result.created)} grade change request(s) created",
            code=201,
        )
    except GradeEngineError:
        raise
    except Exception as e:
        logger.error(f"提交成绩修改申请失败: {str(e)}")
        raise HTTPException(status_code=500, detail=f"提交成绩修改申请失败: {str(e)}")


@router.get("", response_model=ApiResponse)
def list_change_requests(
    academic_year: Optional[str] = Query(None, alias="academicYear", description="学年"),
    teacher_id: Optional[str] = Query(None, alias="teacherId", description="教师ID"),
    store: GradeStore = Depends(get_grade_store),
):
    """按批次列出成绩修改申请"""
    try:
        processor = ChangeRequestProcessor(store)
        return success_response({"report": processor.list_batches(academic_year, teacher_id)})
    except GradeEngineError:
        raise
    except Exception as e:
        logger.error(f"获取成绩修改申请失败: {str(e)}")
        raise HTTPException(status_code=500, detail=f"获取成绩修改申请失败: {str(e)}")


@router.patch("", response_model=ApiResponse)
def resolve_change_requests(request: GradeChangeRequestResolve, store: GradeStore = Depends(get_grade_store)):
    """管理员审核成绩修改申请"""
    try:
        processor = ChangeRequestProcessor(store)
        result = processor.resolve(request.request_ids, request.status, request.admin_rejection_reason)
        return success_response(result.to_dict())
    except GradeEngineError:
        raise
    except Exception as e:
        logger.error(f"审核成绩修改申请失败: {str(e)}")
        raise HTTPException(status_code=500, detail=f"审核成绩修改申请失败: {str(e)}")
