from __future__ import annotations


class StoreError(Exception):
    """Base class for credential store failures."""


class UniqueViolation(StoreError):
    """A unique secondary key (email or username) is already held by another record."""

    def __init__(self, field: str, value: str = ""):
        super().__init__(f"unique constraint violated on {field}")
        self.field = field
        self.value = value


class RecordNotFound(StoreError):
    pass


class StoreClosed(StoreError):
    pass
