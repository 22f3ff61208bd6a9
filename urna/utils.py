"""Centralized ID generation utilities for URNA."""

import uuid


def generate_session_id() -> str:
    """Generate a unique capture-session ID.

    Returns:
        ``session-`` followed by an 8-character hex string.
    """
    return f"session-{uuid.uuid4().hex[:8]}"


def generate_request_id(prefix: str = "") -> str:
    """Generate a unique request ID with optional prefix.

    Args:
        prefix: Optional prefix for the ID (e.g., 'predict', 'health')

    Returns:
        A 16-character hex string, optionally prefixed with hyphen separator.
    """
    unique_part = uuid.uuid4().hex[:16]
    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part
