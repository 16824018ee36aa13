"""
보안 관련 유틸리티

토큰 발급/로그인 UI는 외부 인증 협력자의 몫이고, 여기서는 bearer 토큰 검증과
관리자 권한 확인만 담당한다.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid
from jose import JWTError, jwt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flagquiz.core.config import settings
from flagquiz.core.database import get_db
from flagquiz.core.errors import AdminRequiredError
from flagquiz.models.user import User


# JWT 토큰 스키마
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """액세스 토큰 생성"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str, token_type: str = "access") -> Optional[dict]:
    """토큰 검증"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        if payload.get("type") != token_type:
            return None
        return payload
    except JWTError:
        return None


async def _load_user(db: AsyncSession, token: str) -> Optional[User]:
    payload = verify_token(token, "access")
    if payload is None:
        return None
    user_id = payload.get("sub")
    if user_id is None:
        return None
    try:
        user_uuid = uuid.UUID(str(user_id))
    except ValueError:
        return None
    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        return None
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> User:
    """현재 사용자 가져오기"""
    user = await _load_user(db, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="인증 정보가 유효하지 않습니다.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """
    현재 사용자를 가져오지만, 필수는 아닙니다.
    토큰이 없거나 유효하지 않으면 None을 반환합니다.
    """
    if credentials is None:
        return None
    return await _load_user(db, credentials.credentials)


def ensure_admin(user: Optional[User]) -> None:
    """관리자 권한 방어 체크"""
    if user is None or not getattr(user, "is_admin", False):
        raise AdminRequiredError()
