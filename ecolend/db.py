import structlog
from fastapi import HTTPException
from sqlmodel import Session, SQLModel, create_engine

from ecolend.config import settings

log = structlog.get_logger(__name__)

DATABASE_URL = settings.database_url
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)


def create_db_and_tables() -> None:
    # 注册所有表
    import ecolend.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    session = Session(engine)
    try:
        yield session
    except HTTPException:
        # 鉴权错误：直接抛出
        raise
    except Exception as e:
        # 业务错误 / DB 错误：回滚，保证事务里半截的改动不落库
        session.rollback()
        log.warning("session_rollback", error_type=type(e).__name__, error=str(e))
        raise
    finally:
        session.close()
