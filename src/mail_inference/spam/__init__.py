"""Spam detection: deterministic rules blended with the engine's verdict."""

from mail_inference.spam.rules import RuleEngine, analyze_html, domain_mismatch_count
from mail_inference.spam.detector import EnsembleSpamDetector

__all__ = [
    "RuleEngine",
    "analyze_html",
    "domain_mismatch_count",
    "EnsembleSpamDetector",
]
