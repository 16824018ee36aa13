"""
저장된 계정 스키마
"""

from typing import List
from pydantic import BaseModel


class SavedAccountResponse(BaseModel):
    user_id: str
    email: str
    username: str
    last_used: str


class SavedAccountListResponse(BaseModel):
    accounts: List[SavedAccountResponse]
