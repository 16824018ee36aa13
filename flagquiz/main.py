"""
국기 퀴즈 백엔드 - FastAPI 메인 애플리케이션
리더보드 / 구독 동기화 / 플랜 접근 권한 / 랭크 / 저장된 계정
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from pathlib import Path
import logging

from flagquiz.core.config import settings
from flagquiz.core.database import engine, redis_client, Base
import flagquiz.models  # noqa: F401  (테이블 메타데이터 등록)

from flagquiz.api.leaderboard import router as leaderboard_router
from flagquiz.api.subscription import router as subscription_router
from flagquiz.api.access import router as access_router
from flagquiz.api.ranks import router as ranks_router
from flagquiz.api.accounts import router as accounts_router
from flagquiz.api.admin import router as admin_router

# 로깅 설정
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 시작/종료 시 실행되는 이벤트"""
    logger.info("🚀 국기 퀴즈 백엔드 시작")

    if settings.DATABASE_URL.startswith("sqlite"):
        Path("./data").mkdir(parents=True, exist_ok=True)

    # 데이터베이스 테이블 생성 (개발용)
    if settings.ENVIRONMENT == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("📊 데이터베이스 테이블 생성 완료")

    yield

    await redis_client.aclose()
    await engine.dispose()
    logger.info("👋 국기 퀴즈 백엔드 종료")


app = FastAPI(
    title="국기 퀴즈 API",
    description="리더보드, 구독, 접근 권한 백엔드",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan,
)

# CORS: 개발 환경에선 프론트 도메인을 명시적으로 허용
DEV_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
ALLOWED_ORIGINS = DEV_ALLOWED_ORIGINS if settings.ENVIRONMENT == "development" else []
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(leaderboard_router, prefix="/leaderboard", tags=["🏆 리더보드"])
app.include_router(subscription_router, prefix="/subscription", tags=["💳 구독"])
app.include_router(access_router, prefix="/access", tags=["🔒 접근 권한"])
app.include_router(ranks_router, prefix="/ranks", tags=["🎖️ 랭크"])
app.include_router(accounts_router, prefix="/accounts", tags=["👥 저장된 계정"])
app.include_router(admin_router, prefix="/admin", tags=["🛠️ 관리자"])


@app.get("/")
async def root():
    """루트 엔드포인트"""
    return {
        "message": "국기 퀴즈 API",
        "version": "1.0.0",
        "docs": "/docs",
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """헬스 체크 엔드포인트"""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "flagquiz.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True if settings.ENVIRONMENT == "development" else False
    )
