"""
User Repository Interface.
Defines data access operations for the users collection.
"""

from typing import Any, Dict, List, Optional, Protocol

from healthsathi.domain.schemas.auth import UserRole


class UserRepository(Protocol):
    """Interface for User-specific operations. Records are raw store documents."""

    async def get(self, uid: str) -> Optional[Dict[str, Any]]:
        """Get a user record by id."""
        ...

    async def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Look a user up through the unique email index."""
        ...

    async def add(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a new user; duplicate email or id is rejected."""
        ...

    async def merge_update(self, uid: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Merge partial fields onto an existing user."""
        ...

    async def list_by_role(self, role: UserRole) -> List[Dict[str, Any]]:
        """Get all users holding the given role."""
        ...
