import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.change_requests_api import router as change_requests_router
from app.api.grades_api import router as grades_router
from app.config import configure_logging
from app.database.connection import create_tables, test_connection
from app.exceptions import GradeEngineError, ValidationError, http_status_for
from app.schemas.response_schemas import ErrorDetail, ErrorResponse

configure_logging()
logger = logging.getLogger(__name__)

# 统一错误响应（OpenAPI 文档同样使用该模型）
ERROR_RESPONSES = {
    status: {"model": ErrorResponse} for status in (404, 409, 422, 503)
}


def error_response(status_code: int, exc: GradeEngineError) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(**exc.to_dict()))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@asynccontextmanager
async def lifespan(app: FastAPI):
    if test_connection():
        create_tables()
    else:
        logger.warning("Database not reachable at startup, tables not created")
    yield


app = FastAPI(
    title="成绩审核与统计服务",
    description="成绩提交、审核、修改申请及周期/学期/年度报告API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# 配置CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境请设置具体的域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GradeEngineError)
async def grade_engine_error_handler(request: Request, exc: GradeEngineError):
    status_code = http_status_for(exc)
    logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc.message}")
    return error_response(status_code, exc)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or None
    return error_response(422, ValidationError(first.get("msg", "请求参数不合法"), field=field))


# 注册路由
app.include_router(grades_router, responses=ERROR_RESPONSES)
app.include_router(change_requests_router, responses=ERROR_RESPONSES)


@app.get("/")
async def root():
    return {
        "message": "成绩审核与统计服务",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=False)
