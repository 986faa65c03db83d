# nexa/main.py
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nexa.config import NEXA_VERSION, NEXA_DEBUG
from nexa.routers.api_handler import router as api_router
from nexa.db.session import init_models

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.DEBUG if NEXA_DEBUG else logging.INFO,
)

app = FastAPI(title="NEXA API", version=NEXA_VERSION)

# 모든 origin 허용 (토큰/세션 보호 없음)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.on_event("startup")
async def on_startup():
    """
    앱 시작 시 DB 모델 테이블 생성 (Alembic 도입 전 초기화용)
    """
    await init_models()


# 라우터 등록
app.include_router(api_router)


# 헬스체크 (배포 환경 / 로드밸런서 체크용)
@app.get("/health")
async def health():
    return {"ok": True}
