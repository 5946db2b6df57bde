"""
Mail entities consumed from the persistence layer.

The orchestration core only reads these and mutates three fields as a side
effect of successful inference: ``category``, ``is_spam`` and the cached
``summary``. Items are never created or deleted here.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from mail_inference.models.enums import CategoryLabel


class MailItem(BaseModel):
    """A single synced email message."""
    
    model_config = ConfigDict(validate_assignment=True)
    
    id: str = Field(..., description="Stable message identifier")
    subject: str = Field(default="", description="Subject line")
    sender: str = Field(..., description="From address")
    sender_name: Optional[str] = Field(default=None, description="From display name")
    body_text: Optional[str] = Field(default=None, description="Plain-text body")
    snippet: Optional[str] = Field(default=None, description="Short preview used when no body")
    body_html: Optional[str] = Field(default=None, description="HTML body, if any")
    date_received: Optional[datetime] = Field(default=None)
    category: Optional[CategoryLabel] = Field(
        default=None,
        description="Assigned category (None means never categorized)"
    )
    is_spam: bool = Field(default=False)
    summary: Optional[str] = Field(default=None, description="Cached AI summary")
    
    @property
    def display_sender(self) -> str:
        return self.sender_name or self.sender
    
    @property
    def prompt_body(self) -> str:
        return self.body_text or self.snippet or ""
    
    @property
    def needs_categorization(self) -> bool:
        """Only unset or uncategorized items are eligible for categorization."""
        return self.category is None or self.category is CategoryLabel.UNCATEGORIZED


class MailThread(BaseModel):
    """A conversation thread; carries the cached summary."""
    
    model_config = ConfigDict(validate_assignment=True)
    
    id: str
    subject: str = ""
    messages: list[MailItem] = Field(default_factory=list)
    summary: Optional[str] = Field(default=None, description="Cached AI summary")
    
    def chronological_messages(self) -> list[MailItem]:
        """Messages by ``date_received`` ascending; undated messages sort first."""
        return sorted(
            self.messages,
            key=lambda m: (m.date_received is not None, m.date_received or datetime.min),
        )
