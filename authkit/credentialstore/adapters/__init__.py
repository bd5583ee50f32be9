from .inmemory import InMemoryCredentialStore
from .keyvalue import KeyValueCredentialStore, KeyValuePort, InMemoryKeyValue

__all__ = ["InMemoryCredentialStore", "KeyValueCredentialStore", "KeyValuePort", "InMemoryKeyValue"]
