"""API route modules."""

from . import chat
from . import cookies

__all__ = ["chat", "cookies"]
