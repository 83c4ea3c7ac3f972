"""
DocumentStore implementation of the User Repository.
"""

from typing import Any, Dict, List, Optional

from healthsathi.domain.repositories.base import DocumentStore
from healthsathi.domain.repositories.user_repository import UserRepository
from healthsathi.domain.schemas.auth import UserRole
from healthsathi.infrastructure.database import STORE_USERS


class StoreUserRepository(UserRepository):
    """User repository backed by the 'users' collection."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, uid: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(STORE_USERS, uid)

    async def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self.store.get_by_index(STORE_USERS, "email", email)

    async def add(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return await self.store.add(STORE_USERS, record)

    async def merge_update(self, uid: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return await self.store.merge_update(STORE_USERS, uid, updates)

    async def list_by_role(self, role: UserRole) -> List[Dict[str, Any]]:
        return await self.store.query_by_index(STORE_USERS, "role", role.value)
