# 数据库连接配置
import logging
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from ..config import DATABASE_ECHO, get_database_url

logger = logging.getLogger(__name__)

DATABASE_URL = get_database_url()


def build_engine(database_url: str = DATABASE_URL):
    """创建数据库引擎（SQLite 用于本地开发和测试）"""
    engine_kwargs = {
        "pool_pre_ping": True,           # 连接健康检查
        "echo": DATABASE_ECHO,
        "future": True,
    }
    if database_url.startswith("sqlite"):
        engine_kwargs.update(
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine_kwargs.update(
            poolclass=QueuePool,
            pool_size=20,                # 连接池大小
            max_overflow=30,             # 最大溢出连接
            pool_recycle=3600,           # 连接回收时间(1小时)
            pool_timeout=10,             # 获取连接超时，超时视为存储不可用
        )
    return create_engine(database_url, **engine_kwargs)


# 创建数据库引擎
engine = build_engine()

# 创建会话工厂
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True
)

# 创建声明性基类
Base = declarative_base()


def get_db() -> Generator:
    """获取数据库会话"""
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database session error: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()


def test_connection() -> bool:
    """测试数据库连接"""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            logger.info("Database connection successful")
            return True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")
        return False


def create_tables(bind=None):
    """创建所有表"""
    # 导入模型以注册到元数据
    from . import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=bind or engine)
        logger.info("All tables created successfully")
    except Exception as e:
        logger.error(f"Failed to create tables: {str(e)}")
        raise
