# 应用配置（从环境变量读取）
import logging
import os
import sys

# 日志配置
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# 数据库连接配置
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_HOST = os.getenv("DATABASE_HOST", "127.0.0.1")
DATABASE_PORT = os.getenv("DATABASE_PORT", "3306")
DATABASE_USER = os.getenv("DATABASE_USER", "root")
DATABASE_PASSWORD = os.getenv("DATABASE_PASSWORD", "")
DATABASE_NAME = os.getenv("DATABASE_NAME", "school_grades")
DATABASE_ECHO = os.getenv("DATABASE_ECHO", "false").lower() in ("1", "true", "yes")

# 学年从几月开始（8月 => 2024年8月属于 2024/2025 学年）
ACADEMIC_YEAR_START_MONTH = int(os.getenv("ACADEMIC_YEAR_START_MONTH", "8"))


def get_database_url() -> str:
    """构建数据库URL，DATABASE_URL 优先"""
    if DATABASE_URL:
        return DATABASE_URL
    return (
        f"mysql+pymysql://{DATABASE_USER}:{DATABASE_PASSWORD}"
        f"@{DATABASE_HOST}:{DATABASE_PORT}/{DATABASE_NAME}"
        "?charset=utf8mb4"
    )


def configure_logging(level: str = LOG_LEVEL) -> None:
    """配置全局日志"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # 关闭SQL驱动的调试日志
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
