"""OpenAI-compatible chat completions bridge backed by Notion AI sessions."""

__version__ = "0.1.0"
