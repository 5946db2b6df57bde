"""
Prompt construction and response parsing.

Components:
- PromptTemplates: Jinja2 prompt rendering with sanitized mail fields
- parsing: lenient parsers for category, summary and reply outputs
- text_utils: truncation and prompt-injection neutralization
"""

from mail_inference.prompts.builder import PromptTemplates
from mail_inference.prompts.parsing import (
    parse_categorization_response,
    parse_smart_reply_response,
    parse_summary_response,
)

__all__ = [
    "PromptTemplates",
    "parse_categorization_response",
    "parse_summary_response",
    "parse_smart_reply_response",
]
