from __future__ import annotations

import re

MAX_MESSAGE_LENGTH = 10000
MAX_COURSE_ID_LENGTH = 100

_COURSE_ID = re.compile(r"^[a-z0-9_-]+$")
# Stripped from incoming chat text before it is forwarded to a provider
_INPUT_PATTERNS = [
    re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
]


def clean_message(message: object) -> str:
    """Validate a chat message and strip markup patterns. Raises ValueError with a user-facing reason."""
    if not message:
        raise ValueError("Message is required")
    if not isinstance(message, str):
        raise ValueError("Message must be a string")
    trimmed = message.strip()
    if not trimmed:
        raise ValueError("Message cannot be empty")
    if len(trimmed) > MAX_MESSAGE_LENGTH:
        raise ValueError("Message is too long (max 10,000 characters)")
    for pattern in _INPUT_PATTERNS:
        trimmed = pattern.sub("", trimmed)
    return trimmed


def clean_course_id(course_id: object) -> str:
    if not course_id:
        raise ValueError("Course ID is required")
    if not isinstance(course_id, str):
        raise ValueError("Course ID must be a string")
    cleaned = course_id.strip().lower()
    if not cleaned:
        raise ValueError("Course ID cannot be empty")
    if len(cleaned) > MAX_COURSE_ID_LENGTH:
        raise ValueError("Course ID is too long")
    if not _COURSE_ID.match(cleaned):
        raise ValueError("Invalid course ID format")
    return cleaned
