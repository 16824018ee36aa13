"""
저장된 계정 목록 - 계정 전환 UI용 최근 사용 계정 캐시

목록 전체를 키 하나에 JSON 배열로 저장한다. 저장값이 깨져 있으면 빈 목록으로 본다.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from flagquiz.core.config import settings
from flagquiz.core.database import with_storage_timeout
from flagquiz.core.errors import AccountCapacityError
from flagquiz.services.access_policy import PLAN_LIMITS

logger = logging.getLogger(__name__)

FREE_ACCOUNT_LIMIT = int(PLAN_LIMITS["free"].max_saved_accounts)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...
    async def set(self, key: str, value: str) -> object: ...


@dataclass
class SavedAccount:
    user_id: str
    email: str
    username: str
    last_used: str  # ISO 8601 (UTC)

    def last_used_at(self) -> datetime:
        parsed = datetime.fromisoformat(self.last_used)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _sort_newest_first(accounts: List[SavedAccount]) -> List[SavedAccount]:
    return sorted(accounts, key=lambda a: a.last_used_at(), reverse=True)


class AccountRegistry:
    def __init__(
        self,
        store: KeyValueStore,
        key: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.key = key or settings.SAVED_ACCOUNTS_KEY
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def list_saved_accounts(self) -> List[SavedAccount]:
        """최근 사용 순 목록"""
        raw = await with_storage_timeout("saved accounts read", self.store.get(self.key))
        if not raw:
            return []
        try:
            items = json.loads(raw)
            accounts = [
                SavedAccount(
                    user_id=str(item["user_id"]),
                    email=str(item["email"]),
                    username=str(item["username"]),
                    last_used=str(item["last_used"]),
                )
                for item in items
            ]
            return _sort_newest_first(accounts)
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"[accounts] unreadable saved accounts under {self.key}: {e}")
            return []

    async def _write(self, accounts: List[SavedAccount]) -> None:
        payload = json.dumps([asdict(a) for a in accounts], ensure_ascii=False)
        await with_storage_timeout("saved accounts write", self.store.set(self.key, payload))

    async def save_account(self, user_id: str, email: str, username: str, is_premium: bool) -> List[SavedAccount]:
        """이미 있으면 갱신, 없으면 추가 (무료 사용자는 최대 3개)"""
        accounts = await self.list_saved_accounts()
        now = self.clock().isoformat()
        entry = SavedAccount(user_id=str(user_id), email=email, username=username, last_used=now)

        existing = next((i for i, a in enumerate(accounts) if a.user_id == entry.user_id), None)
        if existing is not None:
            accounts[existing] = entry
        else:
            if not is_premium and len(accounts) >= FREE_ACCOUNT_LIMIT:
                raise AccountCapacityError(FREE_ACCOUNT_LIMIT)
            accounts.append(entry)

        accounts = _sort_newest_first(accounts)
        await self._write(accounts)
        return accounts

    async def remove_account(self, user_id: str) -> None:
        accounts = await self.list_saved_accounts()
        await self._write([a for a in accounts if a.user_id != str(user_id)])

    async def prune_if_over_capacity(self, is_premium: bool) -> List[SavedAccount]:
        """프리미엄이 끝난 사용자: 최근 3개만 남긴다"""
        accounts = await self.list_saved_accounts()
        if is_premium or len(accounts) <= FREE_ACCOUNT_LIMIT:
            return accounts
        keep = accounts[:FREE_ACCOUNT_LIMIT]
        await self._write(keep)
        logger.info(f"[accounts] pruned {len(accounts) - len(keep)} saved accounts under {self.key}")
        return keep
