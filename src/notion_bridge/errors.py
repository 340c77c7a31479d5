"""Error types raised across the bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for bridge errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class ConfigError(BridgeError):
    """Startup configuration is unusable (e.g. no credential could be parsed)."""


class GatewayError(BridgeError):
    """A request could not be served; surfaced to the caller as a terminal chunk."""

    finish_reason = "error"


class AllSessionsInvalid(GatewayError):
    """No enabled and valid credential is left in the pool."""


class UpstreamTimeout(GatewayError):
    """Notion sent no body byte before the request timer fired."""

    finish_reason = "timeout"


class UpstreamTransportError(GatewayError):
    """Network failure talking to Notion."""


class UpstreamStatusError(GatewayError):
    """Notion answered with a non-success status other than 401."""

    def __init__(self, status_code: int, message: str | None = None):
        super().__init__(message or f"Notion responded with HTTP {status_code}")
        self.status_code = status_code


class UpstreamAuthExhausted(GatewayError):
    """Notion rejected both the first and the failover credential."""
