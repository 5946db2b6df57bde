"""
Categorization service: writes repository labels back onto mail items.
"""

from typing import Optional, Sequence
import structlog

from mail_inference.cancellation import CancellationToken
from mail_inference.inference.repository import InferenceRepository
from mail_inference.models.enums import CategoryLabel
from mail_inference.models.mail import MailItem
from mail_inference.monitoring.metrics import batch_items_processed_total

logger = structlog.get_logger(__name__)


class CategorizationService:
    """Categorize items one at a time or as a cancellable batch."""
    
    def __init__(self, repository: InferenceRepository):
        self.repository = repository
    
    async def categorize(self, item: MailItem) -> CategoryLabel:
        """Categorize ``item`` and store the label on it."""
        label = await self.repository.categorize(item)
        item.category = label
        return label
    
    async def categorize_batch(
        self,
        items: Sequence[MailItem],
        token: Optional[CancellationToken] = None,
    ) -> int:
        """
        Categorize items in order, checking ``token`` before each one.
        
        Items are not filtered here; callers decide eligibility. A failure on
        one item is logged and leaves it UNCATEGORIZED; the batch continues.
        
        Returns:
            Number of items that received a label other than UNCATEGORIZED
        """
        categorized = 0
        for index, item in enumerate(items):
            if token is not None and token.cancelled:
                logger.info("Categorization batch cancelled", remaining=len(items) - index)
                break
            try:
                label = await self.categorize(item)
            except Exception as e:
                logger.error(
                    "Item categorization failed, leaving uncategorized",
                    item_id=item.id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                label = CategoryLabel.UNCATEGORIZED
                item.category = label
            batch_items_processed_total.labels(stage="categorize").inc()
            if label is not CategoryLabel.UNCATEGORIZED:
                categorized += 1
        return categorized
