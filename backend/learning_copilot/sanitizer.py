from __future__ import annotations
import re
from dataclasses import dataclass
from typing import List, Tuple


# Order matters: script blocks go first so their inner handlers are not reported twice.
_REPLACEMENTS: List[Tuple[re.Pattern, str]] = [
	(re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE), "[SCRIPT REMOVED]"),
	# unterminated opening tags
	(re.compile(r"<script\b[^>]*>?", re.IGNORECASE), "[SCRIPT REMOVED]"),
	(re.compile(r"javascript:", re.IGNORECASE), "[JAVASCRIPT REMOVED]"),
	(re.compile(r"\bon[a-z]+\s*=", re.IGNORECASE), "[EVENT REMOVED]"),
	(re.compile(r"data:\s*[^;\s]+;base64,[a-zA-Z0-9+/]+=*", re.IGNORECASE), "[DATA URL REMOVED]"),
]

_EXCESS_NEWLINES = re.compile(r"\n{10,}")


@dataclass(frozen=True)
class SanitizedText:
	content: str
	was_sanitized: bool


def sanitize_response(content: str) -> SanitizedText:
	"""Neutralise markup in model output before it is returned to the browser.

	Dangerous fragments are replaced by a visible placeholder rather than dropped, and
	``was_sanitized`` records whether any such replacement happened. Whitespace cleanup
	(newline runs, NUL bytes, trim) does not count as sanitization.
	"""
	text = content or ""
	replaced = 0
	for pattern, placeholder in _REPLACEMENTS:
		text, n = pattern.subn(placeholder, text)
		replaced += n
	text = _EXCESS_NEWLINES.sub("\n\n\n", text)
	text = text.replace("\0", "").strip()
	return SanitizedText(content=text, was_sanitized=replaced > 0)
