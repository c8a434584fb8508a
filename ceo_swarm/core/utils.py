import os
import re


def sanitize_trace(message: str) -> str:
    """
    Make an error or trace string safe to show users and ship over the wire.

    Redacts API keys, bearer tokens and the local home directory.
    """
    if not message:
        return message

    sanitized = message
    sanitized = re.sub(r"sk-ant-[a-zA-Z0-9_-]+", "[REDACTED_KEY]", sanitized)
    sanitized = re.sub(r"sk-[a-zA-Z0-9_-]{20,}", "[REDACTED_KEY]", sanitized)
    sanitized = re.sub(r"Bearer\s+\S+", "Bearer [REDACTED]", sanitized)
    sanitized = re.sub(r"(?i)(x-)?api-key:\s*\S+", "api-key: [REDACTED]", sanitized)
    sanitized = re.sub(r"(?i)Authorization:\s*\S+", "Authorization: [REDACTED]", sanitized)

    home = os.environ.get("HOME") or os.environ.get("USERPROFILE") or ""
    if home and len(home) > 1:
        sanitized = sanitized.replace(home, "[USER_HOME]")

    return sanitized


def preview(text: str, limit: int) -> str:
    """First `limit` characters of `text`, for event payloads."""
    return text[:limit] if text else ""
