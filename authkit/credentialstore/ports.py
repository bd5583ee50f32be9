from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

from authkit.authservice.contracts import UserRecord


class CredentialStorePort(ABC):
    """
    Persistence contract for user credential records.

    Implementations enforce email/username uniqueness atomically: create()
    and update() raise UniqueViolation(field) instead of writing a duplicate.
    update() moves any secondary index entries in the same atomic step as the
    primary record, so no reader observes an index pointing at a stale value.
    """

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def find_by_username(self, username: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def find_by_id(self, user_id: str) -> Optional[UserRecord]: ...

    @abstractmethod
    def create(self, *, username: str, email: str, password_hash: str) -> UserRecord:
        """Assign id and created_at, persist, and return the new record."""

    @abstractmethod
    def update(
        self,
        user_id: str,
        *,
        username: Optional[str] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> UserRecord:
        """Apply the given changes. Raises RecordNotFound if the id is unknown."""

    @abstractmethod
    def delete(self, user_id: str) -> bool: ...

    def close(self) -> None:
        """Release backend resources. Called once at process shutdown."""
