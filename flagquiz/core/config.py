"""
애플리케이션 설정
"""

from pydantic_settings import BaseSettings
from typing import Optional, List
from pathlib import Path
from dotenv import load_dotenv


"""env 로딩 우선순위
1) OS 환경변수
2) 프로젝트 루트의 .env
"""

# .env 사전 로드 (OS 환경변수 우선, override=False)
_here = Path(__file__).resolve()
_repo_root_env = _here.parents[2] / ".env"
if _repo_root_env.exists():
    load_dotenv(dotenv_path=str(_repo_root_env), override=False)


DEFAULT_JWT_SECRET = "your-super-secret-jwt-key-change-this-in-production"


class Settings(BaseSettings):
    """애플리케이션 설정"""
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    DATABASE_URL: str = "sqlite+aiosqlite:///./data/flagquiz.db"
    REDIS_URL: str = "redis://localhost:6379/0"

    # JWT (인증은 외부 협력자가 발급, 여기서는 검증만)
    JWT_SECRET_KEY: str = DEFAULT_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # 결제 웹훅 (Stripe 서명 포맷)
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    SUBSCRIPTION_PERIOD_DAYS: int = 30
    # price_id → 플랜 매핑 (checkout 이벤트에 plan 메타데이터가 없을 때)
    PREMIUM_PRICE_IDS: List[str] = []
    ULTIMATE_PRICE_IDS: List[str] = []

    # 저장소 왕복 시간 제한(초)
    STORAGE_TIMEOUT_SECONDS: float = 5.0

    # 저장된 계정 목록 키
    SAVED_ACCOUNTS_KEY: str = "flagquiz_saved_accounts"

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'ignore'


settings = Settings()


# 환경별 설정 검증
def validate_settings(current: Settings = settings):
    """설정 검증"""
    if current.ENVIRONMENT == "production":
        if current.JWT_SECRET_KEY == DEFAULT_JWT_SECRET:
            raise ValueError("프로덕션 환경에서는 JWT_SECRET_KEY를 변경해야 합니다.")
        if not current.STRIPE_WEBHOOK_SECRET:
            raise ValueError("프로덕션 환경에서는 STRIPE_WEBHOOK_SECRET이 필요합니다.")
    return True


validate_settings()
