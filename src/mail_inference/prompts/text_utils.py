"""
Text processing utilities for prompt construction.

Truncation keeps prompts inside small on-device context windows; the
sanitizer neutralizes instructions smuggled inside quoted mail content so a
message cannot steer the model that classifies it.
"""

import re
import unicodedata


# Chat-template control tokens of common local model families
_SPECIAL_TOKEN_RE = re.compile(
    r"<\|[^|>]{0,40}\|>|\[/?INST\]|<</?SYS>>|</?s>",
    re.IGNORECASE,
)

# "ignore previous instructions", "disregard all prior rules", ...
_OVERRIDE_RE = re.compile(
    r"\b(?:ignore|disregard|forget|override)\b[^\n.]{0,40}?"
    r"\b(?:previous|prior|above|earlier|all|any|the)\b[^\n.]{0,40}?"
    r"\b(?:instructions?|prompts?|rules?|directions?)\b",
    re.IGNORECASE,
)

# Lines pretending to be a new conversation turn
_ROLE_PREFIX_RE = re.compile(
    r"^[ \t]*(?:system|assistant|user|human|developer)[ \t]*:",
    re.IGNORECASE | re.MULTILINE,
)

_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def truncate_at_sentence_boundary(text: str, max_chars: int) -> str:
    """
    Truncate text at the nearest sentence boundary before max_chars.

    Looks for sentence-ending punctuation (. ! ?) followed by whitespace or
    end of text. Without a boundary, cuts at the last space when that keeps
    at least 80% of the budget, else hard-cuts.

    Examples:
        >>> truncate_at_sentence_boundary("Hello. World. Test.", 15)
        'Hello. World.'
    """
    if len(text) <= max_chars:
        return text

    segment = text[:max_chars]
    matches = list(re.finditer(r'[.!?](?:\s|$)', segment))
    if matches:
        cutoff = matches[-1].end()
        if segment[cutoff - 1:cutoff].isspace():
            cutoff -= 1
        return text[:cutoff]

    last_space = segment.rfind(' ')
    if last_space > max_chars * 0.8:
        return text[:last_space]
    return text[:max_chars]


def strip_control_characters(text: str) -> str:
    """Drop non-printable characters except newlines and tabs."""
    return "".join(
        ch for ch in text
        if ch in "\n\t" or unicodedata.category(ch)[0] != "C"
    )


def neutralize_prompt_injection(text: str) -> str:
    """
    Defuse instructions embedded in untrusted mail content.

    - Removes chat-template control tokens
    - Replaces instruction-override phrases with ``[removed]``
    - Demotes role prefixes (``system:``) to quoted text
    - Escapes the ``<<<``/``>>>`` markers that delimit content in prompts
    """
    cleaned = strip_control_characters(text)
    cleaned = _SPECIAL_TOKEN_RE.sub("", cleaned)
    cleaned = _OVERRIDE_RE.sub("[removed]", cleaned)
    cleaned = _ROLE_PREFIX_RE.sub(lambda m: "[quoted] " + m.group(0).strip().rstrip(":") + " -", cleaned)
    cleaned = cleaned.replace("<<<", "< < <").replace(">>>", "> > >")
    return _EXCESS_NEWLINES_RE.sub("\n\n", cleaned).strip()


def sanitize_field(text: str | None, max_chars: int | None = None) -> str:
    """Neutralize and optionally truncate a single prompt field."""
    if not text:
        return ""
    cleaned = neutralize_prompt_injection(text)
    if max_chars is not None:
        cleaned = truncate_at_sentence_boundary(cleaned, max_chars)
    return cleaned
