# 成绩提交、查询和审核API
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.dependencies import get_grade_store, parse_student_ids, success_response
from app.database.repositories import GradeStore
from app.database.schemas import GradeKey
from app.exceptions import GradeEngineError
from app.schemas.request_schemas import GradeSubmissionRequest, StatusUpdateItem
from app.schemas.response_schemas import ApiResponse
from app.services.approval_service import ApprovalStateMachine, StatusUpdate
from app.services.reporting_service import ReportingService, ReportQuery
from app.services.submission_service import GradeEntry, SubmissionService
from app.utils.academic_year import current_academic_year

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/grades", tags=["成绩API"])


@router.post("", response_model=ApiResponse, status_code=201)
def submit_grades(request: GradeSubmissionRequest, store: GradeStore = Depends(get_grade_store)):
    """提交一批成绩（每次提交生成新的 submissionId）"""
    try:
        service = SubmissionService(store)
        submission = service.submit_grades(
            teacher_id=request.teacher_id,
            class_id=request.class_id,
            subject=request.subject,
            grades=[
                GradeEntry(student_id=g.student_id, name=g.name, grade=g.grade, period=g.period)
                for g in request.grades
            ],
            academic_year=request.academic_year,
            resubmit=request.resubmit,
        )
        return success_response(submission.to_dict(), message="成绩提交成功", code=201)
    except GradeEngineError:
        raise
    except Exception as e:
        logger.error(f"提交成绩失败: {str(e)}")
        raise HTTPException(status_code=500, detail=f"提交成绩失败: {str(e)}")


@router.get("", response_model=ApiResponse)
def query_grades(
    academic_year: Optional[str] = Query(None, alias="academicYear", description="学年"),
    class_id: Optional[str] = Query(None, alias="classId", description="班级ID"),
    subject: Optional[str] = Query(None, description="科目"),
    teacher_id: Optional[str] = Query(None, alias="teacherId", description="教师ID"),
    student_ids: Optional[str] = Query(None, alias="studentIds", description="逗号分隔的学生ID"),
    period: Optional[str] = Query(None, description="周期"),
    report_type: Optional[str] = Query(None, alias="reportType", description="报告类型"),
    store: GradeStore = Depends(get_grade_store),
):
    """查询成绩列表或报告"""
    try:
        service = ReportingService(store)
        report = service.generate(ReportQuery(
            academic_year=academic_year,
            class_id=class_id,
            subject=subject,
            teacher_id=teacher_id,
            student_ids=parse_student_ids(student_ids),
            period=period,
            report_type=report_type,
        ))
        return success_response(report)
    except GradeEngineError:
        raise
    except Exception as e:
        logger.error(f"查询成绩失败: {str(e)}")
        raise HTTPException(status_code=500, detail=f"查询成绩失败: {str(e)}")


@router.patch("/status", response_model=ApiResponse)
def update_grade_statuses(updates: List[StatusUpdateItem], store: GradeStore = Depends(get_grade_store)):
    """批量审核成绩，逐项返回结果"""
    try:
        machine = ApprovalStateMachine(store)
        result = machine.update_statuses([
            StatusUpdate(
                submission_id=u.submission_id,
                student_id=u.student_id,
                status=u.status,
                rejection_reason=u.rejection_reason,
                period=u.period,
            )
            for u in updates
        ])
        return success_response(result.to_dict())
    except GradeEngineError:
        raise
    except Exception as e:
        logger.error(f"更新成绩状态失败: {str(e)}")
        raise HTTPException(status_code=500, detail=f"更新成绩状态失败: {str(e)}")


@router.get("/history", response_model=ApiResponse)
def get_grade_history(
    class_id: str = Query(..., alias="classId", description="班级ID"),
    subject: str = Query(..., description="科目"),
    period: str = Query(..., description="周期"),
    student_id: str = Query(..., alias="studentId", description="学生ID"),
    academic_year: Optional[str] = Query(None, alias="academicYear", description="学年"),
    store: GradeStore = Depends(get_grade_store),
):
    """获取单条成绩的变更历史"""
    key = GradeKey(
        academic_year=academic_year or current_academic_year(),
        class_id=class_id,
        subject=subject,
        period=period,
        student_id=student_id,
    )
    try:
        return success_response([h.to_dict() for h in store.history(key)])
    except GradeEngineError:
        raise
    except Exception as e:
        logger.error(f"获取成绩历史失败: {str(e)}")
        raise HTTPException(status_code=500, detail=f"获取成绩历史失败: {str(e)}")
