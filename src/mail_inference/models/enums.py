"""
Enumerations for mail inference data models.

All enums are closed taxonomies - no values outside these sets are permitted.
"""

from enum import Enum


class CategoryLabel(str, Enum):
    """
    Closed taxonomy of mailbox categories.
    
    Single-label classification: each item carries exactly one category.
    UNCATEGORIZED marks items that have not been (successfully) classified
    and is never offered to the model as a choice.
    """
    
    PRIMARY = "primary"
    SOCIAL = "social"
    PROMOTIONS = "promotions"
    UPDATES = "updates"
    UNCATEGORIZED = "uncategorized"
    
    @classmethod
    def assignable(cls) -> list["CategoryLabel"]:
        """Labels a model may choose from (everything except UNCATEGORIZED)."""
        return [label for label in cls if label is not cls.UNCATEGORIZED]
    
    @classmethod
    def from_text(cls, value: str | None) -> "CategoryLabel":
        """Map free text to a label, falling back to UNCATEGORIZED."""
        if not value:
            return cls.UNCATEGORIZED
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNCATEGORIZED


class SpamLabel(str, Enum):
    """Labels offered to the model for the spam signal."""
    
    LEGITIMATE = "legitimate"
    SPAM = "spam"
