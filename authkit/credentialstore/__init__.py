from .ports import CredentialStorePort
from .errors import StoreError, UniqueViolation, RecordNotFound, StoreClosed
from .adapters import InMemoryCredentialStore, KeyValueCredentialStore, KeyValuePort, InMemoryKeyValue


def build_store(backend: str = "memory") -> CredentialStorePort:
    """Construct the configured credential store backend ("memory" | "kv")."""
    if backend == "memory":
        return InMemoryCredentialStore()
    if backend == "kv":
        return KeyValueCredentialStore(InMemoryKeyValue())
    raise ValueError(f"Unknown credential store backend: {backend}")


__all__ = [
    "CredentialStorePort",
    "StoreError",
    "UniqueViolation",
    "RecordNotFound",
    "StoreClosed",
    "InMemoryCredentialStore",
    "KeyValueCredentialStore",
    "KeyValuePort",
    "InMemoryKeyValue",
    "build_store",
]
