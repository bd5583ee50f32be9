from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, TypeVar

from authkit.authservice.contracts import UserRecord
from ..errors import RecordNotFound, StoreClosed, UniqueViolation
from ..ports import CredentialStorePort

log = logging.getLogger("credentialstore.kv")

T = TypeVar("T")


class KeyValuePort:
    """Port interface for a string key-value store with multi-key transactions."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def transaction(self, fn: Callable[["KeyValuePort"], T]) -> T:
        """Run fn against a transactional view; all its writes land together or not at all."""
        raise NotImplementedError

    def close(self) -> None:
        pass


class _StagedView(KeyValuePort):
    """Write buffer over a backing dict. Reads see staged writes first."""

    _DELETED = object()

    def __init__(self, data: Dict[str, str]):
        self._data = data
        self._staged: Dict[str, object] = {}

    def get(self, key: str) -> Optional[str]:
        if key in self._staged:
            v = self._staged[key]
            return None if v is self._DELETED else v
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._staged[key] = value

    def delete(self, key: str) -> None:
        self._staged[key] = self._DELETED

    def commit(self) -> None:
        for k, v in self._staged.items():
            if v is self._DELETED:
                self._data.pop(k, None)
            else:
                self._data[k] = v


class InMemoryKeyValue(KeyValuePort):
    """Thread-safe in-memory backend. Multi-process needs a Redis adapter."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._closed = False

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            self._ensure_open()
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._ensure_open()
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._ensure_open()
            self._data.pop(key, None)

    def transaction(self, fn):
        with self._lock:
            self._ensure_open()
            view = _StagedView(self._data)
            result = fn(view)
            view.commit()
            return result

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreClosed("key-value backend is closed")


class KeyValueCredentialStore(CredentialStorePort):
    """
    Credential store over a KeyValuePort.

    Layout:
      user:<id>          JSON document of the record
      email:<email>      -> id
      username:<name>    -> id
    The record and its index keys are always written in one transaction.
    """

    def __init__(self, kv: Optional[KeyValuePort] = None):
        self.kv = kv or InMemoryKeyValue()

    @staticmethod
    def _user_key(user_id: str) -> str:
        return f"user:{user_id}"

    @staticmethod
    def _email_key(email: str) -> str:
        return f"email:{email}"

    @staticmethod
    def _username_key(username: str) -> str:
        return f"username:{username}"

    # ---------- Reads ----------
    def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        return self._load(self.kv, user_id)

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        return self.kv.transaction(lambda tx: self._load(tx, tx.get(self._email_key(email))))

    def find_by_username(self, username: str) -> Optional[UserRecord]:
        return self.kv.transaction(lambda tx: self._load(tx, tx.get(self._username_key(username))))

    # ---------- Writes ----------
    def create(self, *, username: str, email: str, password_hash: str) -> UserRecord:
        record = UserRecord(
            id=uuid.uuid4().hex,
            username=username,
            email=email,
            password_hash=password_hash,
            created_at=datetime.now(timezone.utc),
        )

        def txn(tx: KeyValuePort) -> UserRecord:
            if tx.get(self._email_key(email)) is not None:
                raise UniqueViolation("email", email)
            if tx.get(self._username_key(username)) is not None:
                raise UniqueViolation("username", username)
            tx.set(self._user_key(record.id), record.model_dump_json())
            tx.set(self._email_key(email), record.id)
            tx.set(self._username_key(username), record.id)
            return record

        created = self.kv.transaction(txn)
        log.debug("store.create id=%s", created.id)
        return created

    def update(self, user_id, *, username=None, email=None, password_hash=None) -> UserRecord:
        def txn(tx: KeyValuePort) -> UserRecord:
            current = self._load(tx, user_id)
            if current is None:
                raise RecordNotFound(user_id)
            changes = {"updated_at": datetime.now(timezone.utc)}
            if email is not None and email != current.email:
                if tx.get(self._email_key(email)) not in (None, user_id):
                    raise UniqueViolation("email", email)
                tx.delete(self._email_key(current.email))
                tx.set(self._email_key(email), user_id)
                changes["email"] = email
            if username is not None and username != current.username:
                if tx.get(self._username_key(username)) not in (None, user_id):
                    raise UniqueViolation("username", username)
                tx.delete(self._username_key(current.username))
                tx.set(self._username_key(username), user_id)
                changes["username"] = username
            if password_hash is not None:
                changes["password_hash"] = password_hash
            updated = current.model_copy(update=changes)
            tx.set(self._user_key(user_id), updated.model_dump_json())
            return updated

        return self.kv.transaction(txn)

    def delete(self, user_id: str) -> bool:
        def txn(tx: KeyValuePort) -> bool:
            current = self._load(tx, user_id)
            if current is None:
                return False
            tx.delete(self._user_key(user_id))
            tx.delete(self._email_key(current.email))
            tx.delete(self._username_key(current.username))
            return True

        return self.kv.transaction(txn)

    def close(self) -> None:
        self.kv.close()

    # ---------- Internals ----------
    def _load(self, kv: KeyValuePort, user_id: Optional[str]) -> Optional[UserRecord]:
        if not user_id:
            return None
        raw = kv.get(self._user_key(user_id))
        if raw is None:
            return None
        return UserRecord.model_validate_json(raw)
