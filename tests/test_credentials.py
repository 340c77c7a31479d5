"""Tests for credential parsing and header formatting."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from helpers import COOKIE_A
from notion_bridge.sessions.credentials import (
    CredentialEntry,
    CredentialParseError,
    build_upstream_headers,
    parse_credential,
    secret_preview,
    split_credential_blob,
)


class TestParseCredential:
    """Tests for parse_credential."""

    def test_extracts_identity_and_tenant(self):
        """Should take identity and tenant from the Notion cookies and keep the whole string."""
        entry = parse_credential(COOKIE_A)

        assert entry.identity == "user-a"
        assert entry.tenant == "space-a"
        assert entry.secret == COOKIE_A
        assert entry.enabled and entry.valid
        assert entry.conversation_context is None

    def test_keeps_context(self):
        """Should attach a conversation context when given."""
        entry = parse_credential(COOKIE_A, "thread-1")
        assert entry.conversation_context == "thread-1"

    def test_strips_whitespace(self):
        """Should ignore surrounding whitespace."""
        entry = parse_credential(f"  {COOKIE_A}\n")
        assert entry.secret == COOKIE_A

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "   ",
            "not a cookie",
            "notion_space_id=space-a; token_v2=x",
            "notion_user_id=user-a; token_v2=x",
            "notion_user_id=; notion_space_id=space-a",
        ],
    )
    def test_rejects_unusable_strings(self, raw):
        """Should raise CredentialParseError when identity or tenant is missing."""
        with pytest.raises(CredentialParseError):
            parse_credential(raw)


class TestSplitCredentialBlob:
    """Tests for split_credential_blob."""

    def test_splits_on_delimiter_and_newlines(self):
        """Should accept both the delimiter and newlines as separators."""
        blob = "a=1 | b=2\nc=3\n\n| "
        assert split_credential_blob(blob) == ["a=1", "b=2", "c=3"]

    def test_custom_delimiter(self):
        """Should honour a configured delimiter."""
        assert split_credential_blob("a=1,b=2", ",") == ["a=1", "b=2"]

    def test_empty_blob(self):
        """Should return nothing for an empty blob."""
        assert split_credential_blob("") == []


class TestCredentialEntry:
    """Tests for CredentialEntry serialization."""

    def test_eligible_requires_enabled_and_valid(self):
        """Should only be eligible when both enabled and valid."""
        entry = parse_credential(COOKIE_A)
        assert entry.eligible
        entry.valid = False
        assert not entry.eligible
        entry.valid, entry.enabled = True, False
        assert not entry.eligible

    def test_dict_round_trip(self):
        """Should restore every field from its stored record."""
        entry = CredentialEntry(
            identity="user-a",
            tenant="space-a",
            secret=COOKIE_A,
            conversation_context="thread-1",
            enabled=False,
            valid=False,
            last_used_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        )
        data = entry.to_dict()

        assert data["conversationContext"] == "thread-1"
        assert data["lastUsedAt"] == "2024-05-01T12:00:00+00:00"
        assert CredentialEntry.from_dict(data) == entry

    def test_redacted_hides_secret(self):
        """Should replace the secret with a preview."""
        entry = parse_credential(COOKIE_A)
        view = entry.redacted()

        assert "secret" not in view
        assert view["secretPreview"] == secret_preview(COOKIE_A)
        assert "secret-a" not in view["secretPreview"]


class TestSecretPreview:
    """Tests for secret_preview."""

    def test_is_stable_and_short(self):
        """Should be deterministic and much shorter than the secret."""
        assert secret_preview(COOKIE_A) == secret_preview(COOKIE_A)
        assert secret_preview(COOKIE_A).startswith(COOKIE_A[:6])
        assert len(secret_preview(COOKIE_A)) == 6 + 3 + 12

    def test_differs_between_secrets(self):
        """Should distinguish different secrets sharing a prefix."""
        assert secret_preview(COOKIE_A) != secret_preview(COOKIE_A + "x")

    def test_empty(self):
        assert secret_preview("") == ""


class TestBuildUpstreamHeaders:
    """Tests for build_upstream_headers."""

    def test_carries_session_and_identity(self, settings):
        """Should send the cookie string and the identity/tenant headers."""
        headers = build_upstream_headers(parse_credential(COOKIE_A), settings)

        assert headers["Cookie"] == COOKIE_A
        assert headers["x-notion-active-user-header"] == "user-a"
        assert headers["x-notion-space-id"] == "space-a"
        assert headers["notion-client-version"] == settings.notion_client_version
        assert headers["accept"] == "application/x-ndjson"
        assert headers["Content-Type"] == "application/json"
