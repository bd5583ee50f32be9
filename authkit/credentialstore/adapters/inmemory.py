from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from authkit.authservice.contracts import UserRecord
from ..errors import RecordNotFound, StoreClosed, UniqueViolation
from ..ports import CredentialStorePort

log = logging.getLogger("credentialstore.inmemory")


class InMemoryCredentialStore(CredentialStorePort):
    """Thread-safe in-memory store with a coarse-grained lock.

    Primary records keyed by id, plus email and username indices. Every
    check-and-write runs under the same lock, so uniqueness holds under
    concurrent registrations. Single-process only.
    """

    def __init__(self):
        self._by_id: Dict[str, UserRecord] = {}
        self._id_by_email: Dict[str, str] = {}
        self._id_by_username: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._closed = False

    # ---------- Reads ----------
    def find_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            self._ensure_open()
            return self._get(self._id_by_email.get(email))

    def find_by_username(self, username: str) -> Optional[UserRecord]:
        with self._lock:
            self._ensure_open()
            return self._get(self._id_by_username.get(username))

    def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            self._ensure_open()
            return self._get(user_id)

    # ---------- Writes ----------
    def create(self, *, username: str, email: str, password_hash: str) -> UserRecord:
        with self._lock:
            self._ensure_open()
            if email in self._id_by_email:
                raise UniqueViolation("email", email)
            if username in self._id_by_username:
                raise UniqueViolation("username", username)
            record = UserRecord(
                id=uuid.uuid4().hex,
                username=username,
                email=email,
                password_hash=password_hash,
                created_at=datetime.now(timezone.utc),
            )
            self._by_id[record.id] = record
            self._id_by_email[email] = record.id
            self._id_by_username[username] = record.id
            log.debug("store.create id=%s", record.id)
            return record.model_copy()

    def update(self, user_id, *, username=None, email=None, password_hash=None) -> UserRecord:
        with self._lock:
            self._ensure_open()
            current = self._by_id.get(user_id)
            if current is None:
                raise RecordNotFound(user_id)
            if email is not None and self._id_by_email.get(email, user_id) != user_id:
                raise UniqueViolation("email", email)
            if username is not None and self._id_by_username.get(username, user_id) != user_id:
                raise UniqueViolation("username", username)

            changes = {"updated_at": datetime.now(timezone.utc)}
            if email is not None and email != current.email:
                del self._id_by_email[current.email]
                self._id_by_email[email] = user_id
                changes["email"] = email
            if username is not None and username != current.username:
                del self._id_by_username[current.username]
                self._id_by_username[username] = user_id
                changes["username"] = username
            if password_hash is not None:
                changes["password_hash"] = password_hash

            updated = current.model_copy(update=changes)
            self._by_id[user_id] = updated
            return updated.model_copy()

    def delete(self, user_id: str) -> bool:
        with self._lock:
            self._ensure_open()
            record = self._by_id.pop(user_id, None)
            if record is None:
                return False
            self._id_by_email.pop(record.email, None)
            self._id_by_username.pop(record.username, None)
            return True

    def close(self) -> None:
        with self._lock:
            self._closed = True

    # ---------- Internals ----------
    def _get(self, user_id: Optional[str]) -> Optional[UserRecord]:
        if user_id is None:
            return None
        rec = self._by_id.get(user_id)
        return rec.model_copy() if rec else None

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosed("credential store is closed")
