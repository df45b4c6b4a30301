import os

# 测试使用内存SQLite，必须在导入应用之前设置
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import models  # noqa: F401
from app.database.connection import Base, get_db
from app.database.repositories import InMemoryGradeStore, SqlAlchemyGradeStore

ACADEMIC_YEAR = "2024/2025"


class FakeClock:
    """每次调用前进一秒的时钟"""

    def __init__(self, start: datetime = datetime(2024, 9, 2, 8, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        self.current = self.current + timedelta(seconds=1)
        return self.current


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(params=["memory", "sqlalchemy"])
def store(request, db_session):
    """两种存储实现运行同一组测试"""
    if request.param == "memory":
        return InMemoryGradeStore()
    return SqlAlchemyGradeStore(db_session)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(db_session):
    from app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
