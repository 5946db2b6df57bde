"""
Background batch processing for newly synced mail.

Eligible items are drained in fixed-size batches: categorization over the
whole batch, then spam detection over the whole batch, then a yield back to
the event loop before the next batch. A new ``enqueue`` replaces the running
batch run; cancellation is cooperative and checked at batch boundaries
(and per item inside the services).
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Optional
import structlog

from mail_inference.cancellation import CancellationToken, yield_control
from mail_inference.inference.categorization import CategorizationService
from mail_inference.logging_config import bind_run_context, clear_run_context
from mail_inference.models.mail import MailItem
from mail_inference.models.results import BatchRunSnapshot
from mail_inference.spam.detector import EnsembleSpamDetector


logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 50


@dataclass
class _BatchRun:
    items: list[MailItem]
    token: CancellationToken = field(default_factory=CancellationToken)
    task: Optional[asyncio.Task] = None


class BatchProcessingScheduler:
    """
    Owns the batch run state and the single active run.

    Progress fields are read-only properties for UI binding; ``snapshot()``
    returns them as one immutable value.
    """
    
    def __init__(
        self,
        categorizer: CategorizationService,
        spam_detector: EnsembleSpamDetector,
        batch_size: int = DEFAULT_BATCH_SIZE,
        yielder: Callable[[], Awaitable[None]] = yield_control,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.categorizer = categorizer
        self.spam_detector = spam_detector
        self.batch_size = batch_size
        self._yield = yielder
        
        self._active_run: Optional[_BatchRun] = None
        self._is_processing = False
        self._processed_count = 0
        self._total_count = 0
        self._last_categorized_count = 0
        self._last_spam_count = 0
    
    @property
    def is_processing(self) -> bool:
        return self._is_processing
    
    @property
    def processed_count(self) -> int:
        return self._processed_count
    
    @property
    def total_count(self) -> int:
        return self._total_count
    
    @property
    def last_categorized_count(self) -> int:
        return self._last_categorized_count
    
    @property
    def last_spam_count(self) -> int:
        return self._last_spam_count
    
    def snapshot(self) -> BatchRunSnapshot:
        return BatchRunSnapshot(
            is_processing=self._is_processing,
            processed_count=self._processed_count,
            total_count=self._total_count,
            last_categorized_count=self._last_categorized_count,
            last_spam_count=self._last_spam_count,
        )
    
    def enqueue(self, items: Iterable[MailItem]) -> Optional[asyncio.Task]:
        """
        Start a run over the items that still need a category.
        
        Must be called from a running event loop. Cancels any prior run.
        
        Returns:
            The task driving the new run, or None when nothing is eligible
        """
        loop = asyncio.get_running_loop()
        eligible = [item for item in items if item.needs_categorization]
        if not eligible:
            logger.debug("Nothing to enqueue")
            return None
        
        if self._active_run is not None:
            self._active_run.token.cancel()
            logger.info("Superseding active batch run")
        
        self._processed_count = 0
        self._total_count = len(eligible)
        self._last_categorized_count = 0
        self._last_spam_count = 0
        self._is_processing = True
        
        run = _BatchRun(items=eligible)
        self._active_run = run
        run.task = loop.create_task(self._run(run))
        return run.task
    
    def cancel(self) -> None:
        """Cancel the active run; it stops before its next batch."""
        if self._active_run is not None:
            self._active_run.token.cancel()
            logger.info("Batch run cancelled", processed=self._processed_count, total=self._total_count)
        self._active_run = None
        self._is_processing = False
    
    async def wait(self) -> None:
        """Wait for the active run (if any) to finish."""
        run = self._active_run
        if run is not None and run.task is not None:
            await asyncio.shield(run.task)
    
    async def _run(self, run: _BatchRun) -> None:
        run_id = bind_run_context(total=len(run.items), batch_size=self.batch_size)
        logger.info("Batch run started")
        batches = 0
        try:
            for start in range(0, len(run.items), self.batch_size):
                if run.token.cancelled:
                    logger.info("Batch run stopped before next batch", batches=batches)
                    break
                batch = run.items[start:start + self.batch_size]
                
                categorized = await self.categorizer.categorize_batch(batch, token=run.token)
                flagged = await self.spam_detector.detect_batch(batch, token=run.token)
                batches += 1
                
                if self._active_run is run:
                    self._processed_count += len(batch)
                    self._last_categorized_count += categorized
                    self._last_spam_count += flagged
                
                logger.debug(
                    "Batch processed",
                    batch=batches,
                    size=len(batch),
                    categorized=categorized,
                    flagged=flagged,
                )
                await self._yield()
        except Exception as e:
            logger.error(
                "Batch run aborted",
                run_id=run_id,
                batches=batches,
                error_type=type(e).__name__,
                error=str(e),
            )
        finally:
            if self._active_run is run:
                self._active_run = None
                self._is_processing = False
            logger.info("Batch run finished", batches=batches, cancelled=run.token.cancelled)
            clear_run_context()
