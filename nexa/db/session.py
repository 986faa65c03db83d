from typing import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.pool import NullPool
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
)

from nexa.config import DB_URL

if DB_URL.startswith("sqlite"):
    # 로컬 SQLite 파일: 커넥션 풀 없이 매번 연결
    engine = create_async_engine(DB_URL, poolclass=NullPool, echo=False)
else:
    engine = create_async_engine(
        DB_URL,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=False,   # 필요하면 True
    )

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """
    요청 단위 비동기 세션 컨텍스트 매니저
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

# --- 앱 시작 시 1회 호출하여 테이블 생성 ---
async def init_models() -> None:
    """
    models.Base 기준으로 테이블을 생성합니다.
    Alembic 도입 전 임시 초기화 용도.
    """
    from nexa.db.models import Base  # 지연 임포트로 순환참조 방지
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
