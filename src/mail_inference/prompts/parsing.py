"""
Parsers turning raw model text into structured results.

Lenient by design: each parser returns the operation's default value
(UNCATEGORIZED, None, empty list) when the text does not have the expected
shape, so model quirks never become errors.
"""

import re
from typing import Optional
import structlog

from mail_inference.models.enums import CategoryLabel


logger = structlog.get_logger(__name__)

_WORD_RE = re.compile(r"[a-z]+")
_SUMMARY_PREFIX_RE = re.compile(r"^\s*(?:thread\s+)?summary\s*:\s*", re.IGNORECASE)
_LIST_MARKER_RE = re.compile(r"^\s*(?:\d+\s*[.):-]|[-*•])\s*")
_REPLY_HEADER_RE = re.compile(r"^(?:here are|suggested repl|possible repl|repl(?:y|ies)\b).*:$", re.IGNORECASE)
_QUOTES = "\"'“”‘’"


def parse_categorization_response(text: str) -> CategoryLabel:
    """
    Map generated text to a category.

    The first word naming an assignable category wins; anything else is
    UNCATEGORIZED.
    """
    assignable = {label.value: label for label in CategoryLabel.assignable()}
    for word in _WORD_RE.findall((text or "").lower()):
        if word in assignable:
            return assignable[word]
    logger.debug("Unparseable categorization output", output=(text or "")[:50])
    return CategoryLabel.UNCATEGORIZED


def parse_summary_response(text: str) -> Optional[str]:
    """Strip a leading ``Summary:`` label and surrounding quotes; None when empty."""
    if not text:
        return None
    summary = _SUMMARY_PREFIX_RE.sub("", text.strip()).strip().strip(_QUOTES).strip()
    return summary or None


def parse_smart_reply_response(text: str, max_suggestions: int = 3) -> list[str]:
    """
    Split generated text into reply suggestions.

    One suggestion per line; list markers, quotes and header lines such as
    "Here are some replies:" are removed, duplicates dropped.
    """
    if not text:
        return []

    replies: list[str] = []
    for line in text.splitlines():
        candidate = _LIST_MARKER_RE.sub("", line).strip().strip(_QUOTES).strip()
        if not candidate or _REPLY_HEADER_RE.match(candidate):
            continue
        if candidate not in replies:
            replies.append(candidate)
        if len(replies) >= max_suggestions:
            break
    return replies
