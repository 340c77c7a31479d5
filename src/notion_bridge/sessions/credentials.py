"""Credential entries: parsing raw Notion cookies and formatting outbound headers."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..config import Settings

USER_ID_COOKIE = "notion_user_id"
SPACE_ID_COOKIE = "notion_space_id"


class CredentialParseError(ValueError):
    """Raised when a raw credential string does not yield identity and tenant."""


@dataclass
class CredentialEntry:
    """One rotatable Notion browser session."""

    identity: str
    tenant: str
    secret: str
    conversation_context: str | None = None
    enabled: bool = True
    valid: bool = True
    last_used_at: datetime | None = None

    @property
    def eligible(self) -> bool:
        return self.enabled and self.valid

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CredentialEntry:
        """Create from a stored record (camelCase keys)."""
        last_used = data.get("lastUsedAt")
        return cls(
            identity=data["identity"],
            tenant=data["tenant"],
            secret=data.get("secret", ""),
            conversation_context=data.get("conversationContext"),
            enabled=data.get("enabled", True),
            valid=data.get("valid", True),
            last_used_at=datetime.fromisoformat(last_used) if last_used else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a stored record (camelCase keys)."""
        return {
            "identity": self.identity,
            "tenant": self.tenant,
            "secret": self.secret,
            "conversationContext": self.conversation_context,
            "enabled": self.enabled,
            "valid": self.valid,
            "lastUsedAt": self.last_used_at.isoformat() if self.last_used_at else None,
        }

    def redacted(self) -> dict[str, Any]:
        """Status view with the secret replaced by a preview."""
        return {
            "identity": self.identity,
            "tenant": self.tenant,
            "secretPreview": secret_preview(self.secret),
            "conversationContext": self.conversation_context,
            "enabled": self.enabled,
            "valid": self.valid,
            "lastUsedAt": self.last_used_at.isoformat() if self.last_used_at else None,
        }


def _cookie_pairs(raw: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for part in raw.split(";"):
        name, sep, value = part.strip().partition("=")
        if sep and name:
            pairs[name.strip()] = value.strip()
    return pairs


def parse_credential(raw: str, context: str | None = None) -> CredentialEntry:
    """Parse a browser ``Cookie`` header string into a credential entry.

    The identity is the ``notion_user_id`` cookie and the tenant the
    ``notion_space_id`` cookie; the whole string is kept as the secret.
    """
    secret = (raw or "").strip()
    if not secret:
        raise CredentialParseError("Credential is empty")

    pairs = _cookie_pairs(secret)
    if not pairs:
        raise CredentialParseError("Credential is not a cookie string (expected name=value pairs)")

    identity = pairs.get(USER_ID_COOKIE, "")
    if not identity:
        raise CredentialParseError(f"Credential is missing the {USER_ID_COOKIE} cookie")
    tenant = pairs.get(SPACE_ID_COOKIE, "")
    if not tenant:
        raise CredentialParseError(f"Credential is missing the {SPACE_ID_COOKIE} cookie")

    return CredentialEntry(
        identity=identity,
        tenant=tenant,
        secret=secret,
        conversation_context=context or None,
    )


def split_credential_blob(blob: str, delimiter: str = "|") -> list[str]:
    """Split a delimiter-separated blob into raw credential strings (newlines also split)."""
    raws: list[str] = []
    for line in (blob or "").splitlines():
        for part in line.split(delimiter):
            part = part.strip()
            if part:
                raws.append(part)
    return raws


def secret_preview(secret: str) -> str:
    """Short, non-reversible preview of a secret."""
    if not secret:
        return ""
    fingerprint = hashlib.sha256(secret.encode()).hexdigest()[:12]
    return f"{secret[:6]}...{fingerprint}"


def build_upstream_headers(entry: CredentialEntry, settings: Settings) -> dict[str, str]:
    """Headers for a runInferenceTranscript call made as ``entry``."""
    return {
        "Content-Type": "application/json",
        "accept": "application/x-ndjson",
        "accept-language": "en-US,en;q=0.9",
        "notion-audit-log-platform": "web",
        "notion-client-version": settings.notion_client_version,
        "origin": settings.notion_origin,
        "referer": settings.notion_referer,
        "user-agent": settings.notion_user_agent,
        "x-notion-active-user-header": entry.identity,
        "x-notion-space-id": entry.tenant,
        "Cookie": entry.secret,
    }
