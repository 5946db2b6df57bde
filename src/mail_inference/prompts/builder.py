"""
Prompt builder for mail inference requests.

Responsible for:
- Loading and rendering Jinja2 templates
- Sanitizing untrusted mail fields before they reach a prompt
- Truncating bodies to the configured character budgets
- Ordering thread messages for summarization
"""

from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence
from jinja2 import Environment, FileSystemLoader
import structlog

from mail_inference.models.enums import CategoryLabel
from mail_inference.models.mail import MailItem, MailThread
from mail_inference.prompts.text_utils import sanitize_field


logger = structlog.get_logger(__name__)

PACKAGED_TEMPLATES_DIR = Path(__file__).parent / "templates"


def format_message_date(value: Optional[datetime]) -> str:
    """Human-readable timestamp for prompts."""
    if value is None:
        return "Unknown date"
    return value.strftime("%b %d, %Y %H:%M")


class PromptTemplates:
    """
    Build prompts from mail entities.

    Every field that originates from a message (subject, sender, body) goes
    through ``sanitize_field`` before rendering.
    """

    def __init__(
        self,
        templates_dir: Optional[Path] = None,
        classification_body_limit: int = 2000,
        summary_body_limit: int = 1500,
        smart_reply_count: int = 3,
    ):
        """
        Initialize prompt templates.

        Args:
            templates_dir: Directory containing the .j2 templates (packaged ones by default)
            classification_body_limit: Max body characters for categorization prompts
            summary_body_limit: Max body characters per message in summary prompts
            smart_reply_count: Number of reply suggestions to ask for
        """
        self.templates_dir = Path(templates_dir) if templates_dir else PACKAGED_TEMPLATES_DIR
        self.classification_body_limit = classification_body_limit
        self.summary_body_limit = summary_body_limit
        self.smart_reply_count = smart_reply_count

        self.jinja_env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False  # Prompts, not HTML
        )

        try:
            self.classification_text_template = self.jinja_env.get_template("classification_text.j2")
            self.categorization_template = self.jinja_env.get_template("categorization.j2")
            self.summary_template = self.jinja_env.get_template("summary.j2")
            self.smart_reply_template = self.jinja_env.get_template("smart_reply.j2")
        except Exception as e:
            logger.error("Failed to load prompt templates", error=str(e), templates_dir=str(self.templates_dir))
            raise

        logger.info(
            "Prompt templates loaded",
            templates_dir=str(self.templates_dir),
            classification_body_limit=classification_body_limit,
            summary_body_limit=summary_body_limit,
        )

    def build_sanitized_classification_text(self, subject: str, sender: str, body: str) -> str:
        """Constrained, injection-neutralized text handed to ``engine.classify``."""
        return self.classification_text_template.render(
            subject=sanitize_field(subject, 300) or "(no subject)",
            sender=sanitize_field(sender, 200) or "(unknown)",
            body=sanitize_field(body, self.classification_body_limit),
        ).strip()

    def build_categorization_prompt(
        self,
        subject: str,
        sender: str,
        body: str,
        categories: Optional[Sequence[str]] = None,
    ) -> str:
        """Free-form generation prompt used when classification is unavailable."""
        if categories is None:
            categories = [label.value for label in CategoryLabel.assignable()]
        return self.categorization_template.render(
            categories=list(categories),
            email_text=self.build_sanitized_classification_text(subject, sender, body),
        ).strip()

    def build_summary_prompt(self, thread: MailThread) -> str:
        """Summary prompt with messages in chronological order (undated first)."""
        messages = [
            {
                "sender": sanitize_field(message.display_sender, 200) or "(unknown)",
                "date": format_message_date(message.date_received),
                "body": sanitize_field(message.prompt_body, self.summary_body_limit),
            }
            for message in thread.chronological_messages()
        ]
        prompt = self.summary_template.render(
            subject=sanitize_field(thread.subject, 300) or "(no subject)",
            messages=messages,
        ).strip()
        logger.debug("Summary prompt built", thread_id=thread.id, messages=len(messages), prompt_length=len(prompt))
        return prompt

    def build_smart_reply_prompt(self, item: MailItem) -> str:
        """Prompt asking for ``smart_reply_count`` one-line replies."""
        return self.smart_reply_template.render(
            count=self.smart_reply_count,
            sender_name=sanitize_field(item.display_sender, 200) or "the sender",
            sender_email=sanitize_field(item.sender, 200),
            subject=sanitize_field(item.subject, 300) or "(no subject)",
            body=sanitize_field(item.prompt_body, self.classification_body_limit),
        ).strip()
