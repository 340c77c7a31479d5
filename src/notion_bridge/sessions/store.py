"""Persistence backends for credential entries."""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from ..config import Settings
from .credentials import CredentialEntry

logger = logging.getLogger(__name__)

STORE_VERSION = "1.0"


class CredentialStore(Protocol):
    """Durability hook used by the session pool."""

    def load(self) -> list[CredentialEntry]: ...

    def save(self, entries: list[CredentialEntry]) -> None: ...


class MemoryStore:
    """Keeps the last saved snapshot in memory."""

    def __init__(self, entries: list[CredentialEntry] | None = None) -> None:
        self.entries = [replace(e) for e in entries or []]
        self.saves = 0

    def load(self) -> list[CredentialEntry]:
        return [replace(e) for e in self.entries]

    def save(self, entries: list[CredentialEntry]) -> None:
        self.entries = [replace(e) for e in entries]
        self.saves += 1


class JsonFileStore:
    """JSON document on disk, with a backup copy of the previous version."""

    def __init__(self, data_dir: str | Path) -> None:
        self.data_dir = Path(data_dir).expanduser()
        self.path = self.data_dir / "credentials.json"
        self.backup_path = self.data_dir / "credentials.backup.json"

    def _read(self, path: Path) -> list[CredentialEntry]:
        data = json.loads(path.read_text(encoding="utf-8"))
        return [CredentialEntry.from_dict(item) for item in data.get("credentials", [])]

    def load(self) -> list[CredentialEntry]:
        if not self.path.exists():
            logger.info("No credential store at %s", self.path)
            return []
        try:
            entries = self._read(self.path)
        except (OSError, ValueError, KeyError) as e:
            logger.error("Failed to read credential store %s: %s", self.path, e)
            if not self.backup_path.exists():
                return []
            try:
                entries = self._read(self.backup_path)
            except (OSError, ValueError, KeyError) as backup_error:
                logger.error("Failed to read backup %s: %s", self.backup_path, backup_error)
                return []
            shutil.copyfile(self.backup_path, self.path)
            logger.info("Restored credential store from backup")
        logger.info("Loaded %d stored credential(s)", len(entries))
        return entries

    def save(self, entries: list[CredentialEntry]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        document = {
            "version": STORE_VERSION,
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
            "credentials": [entry.to_dict() for entry in entries],
        }
        if self.path.exists():
            shutil.copyfile(self.path, self.backup_path)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
        logger.debug("Saved %d credential(s) to %s", len(entries), self.path)


class FirestoreStore:
    """One Firestore document per identity."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.collection = settings.firestore_collection

    def _client(self):
        from firebase_admin import firestore

        _initialize_firebase(self.settings)
        return firestore.client()

    def load(self) -> list[CredentialEntry]:
        db = self._client()
        entries = []
        for doc in db.collection(self.collection).stream():
            data = doc.to_dict()
            data.setdefault("identity", doc.id)
            entries.append(CredentialEntry.from_dict(data))
        logger.info("Loaded %d credential(s) from Firestore", len(entries))
        return entries

    def save(self, entries: list[CredentialEntry]) -> None:
        db = self._client()
        collection_ref = db.collection(self.collection)
        keep = {entry.identity for entry in entries}
        batch = db.batch()
        for doc in collection_ref.stream():
            if doc.id not in keep:
                batch.delete(doc.reference)
        now = datetime.now(timezone.utc).isoformat()
        for entry in entries:
            batch.set(collection_ref.document(entry.identity), {**entry.to_dict(), "updatedAt": now})
        batch.commit()
        logger.debug("Saved %d credential(s) to Firestore", len(entries))


_app = None


def _initialize_firebase(settings: Settings):
    """Initialize the Firebase Admin SDK once."""
    global _app
    import firebase_admin
    from firebase_admin import credentials

    if _app is not None:
        return _app
    if firebase_admin._apps:
        _app = firebase_admin.get_app()
        return _app

    key = settings.firebase_service_account_key
    cred = None
    if key:
        path = Path(key).expanduser()
        if path.exists():
            cred = credentials.Certificate(str(path))
        else:
            try:
                cred = credentials.Certificate(json.loads(key))
            except json.JSONDecodeError:
                raise ValueError(f"Invalid service account key: {key}")
    _app = firebase_admin.initialize_app(cred) if cred else firebase_admin.initialize_app()
    return _app


def build_store(settings: Settings) -> CredentialStore:
    """Return the persistence backend selected by PERSISTENCE_BACKEND."""
    if settings.persistence_backend == "firestore":
        return FirestoreStore(settings)
    if settings.persistence_backend == "memory":
        return MemoryStore()
    return JsonFileStore(settings.data_dir)
