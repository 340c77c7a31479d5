"""Credential parsing, rotation and persistence."""

from .credentials import CredentialEntry, CredentialParseError, parse_credential, split_credential_blob
from .pool import AddResult, SessionPool
from .store import CredentialStore, FirestoreStore, JsonFileStore, MemoryStore, build_store

__all__ = [
    "CredentialEntry",
    "CredentialParseError",
    "parse_credential",
    "split_credential_blob",
    "AddResult",
    "SessionPool",
    "CredentialStore",
    "FirestoreStore",
    "JsonFileStore",
    "MemoryStore",
    "build_store",
]
