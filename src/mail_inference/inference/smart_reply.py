"""
Smart reply service: caps suggestions for the reply chip row.
"""

import structlog

from mail_inference.inference.repository import InferenceRepository
from mail_inference.models.mail import MailItem

logger = structlog.get_logger(__name__)

MAX_SUGGESTIONS = 3


class SmartReplyService:
    """Thin layer over InferenceRepository.smart_reply."""
    
    def __init__(self, repository: InferenceRepository, max_suggestions: int = MAX_SUGGESTIONS):
        self.repository = repository
        self.max_suggestions = max_suggestions
    
    async def execute(self, item: MailItem) -> list[str]:
        """Return at most ``max_suggestions`` replies; repository errors propagate."""
        suggestions = await self.repository.smart_reply(item)
        return suggestions[:self.max_suggestions]
    
    async def execute_or_empty(self, item: MailItem) -> list[str]:
        """Like ``execute`` but hides any failure behind an empty list."""
        try:
            return await self.execute(item)
        except Exception as e:
            logger.warning("Smart replies hidden after failure", item_id=item.id, error=str(e))
            return []
