"""
Pydantic data models for mail inference.

Includes:
- Enums (CategoryLabel, SpamLabel)
- Mail entities (MailItem, MailThread)
- Results (SpamSignal, SpamDecision, BatchRunSnapshot)
"""

from mail_inference.models.enums import CategoryLabel, SpamLabel
from mail_inference.models.mail import MailItem, MailThread
from mail_inference.models.results import (
    MODEL_SCORE_UNAVAILABLE,
    BatchRunSnapshot,
    SpamDecision,
    SpamSignal,
)

__all__ = [
    "CategoryLabel",
    "SpamLabel",
    "MailItem",
    "MailThread",
    "MODEL_SCORE_UNAVAILABLE",
    "SpamSignal",
    "SpamDecision",
    "BatchRunSnapshot",
]
