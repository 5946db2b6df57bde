"""
Unit tests for BatchProcessingScheduler.

The categorization service and spam detector are AsyncMocks that record the
batches they receive, so batch boundaries, yields and cancellation can be
observed directly.
"""

import asyncio
import math
from unittest.mock import AsyncMock, Mock

import pytest

from mail_inference.inference.categorization import CategorizationService
from mail_inference.inference.repository import InferenceRepository
from mail_inference.models.enums import CategoryLabel
from mail_inference.models.results import BatchRunSnapshot
from mail_inference.scheduling.scheduler import BatchProcessingScheduler
from mail_inference.spam.detector import EnsembleSpamDetector
from mail_inference.spam.rules import RuleEngine


class Recorder:
    """Shared event log for categorize / spam / yield calls."""
    
    def __init__(self):
        self.events: list[tuple[str, int]] = []
        self.categorized_batches: list[list[str]] = []
    
    def batches(self) -> int:
        return sum(1 for name, _ in self.events if name == "categorize")
    
    def yields(self) -> int:
        return sum(1 for name, _ in self.events if name == "yield")


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def make_scheduler(recorder):
    def _make(categorize_hook=None, spam_per_batch: int = 0, batch_size: int = 50):
        categorizer = Mock(spec=CategorizationService)
        detector = Mock(spec=EnsembleSpamDetector)
        
        async def categorize_batch(items, token=None):
            recorder.events.append(("categorize", len(items)))
            recorder.categorized_batches.append([item.id for item in items])
            if categorize_hook is not None:
                await categorize_hook(items, token)
            return len(items)
        
        async def detect_batch(items, token=None):
            recorder.events.append(("spam", len(items)))
            return spam_per_batch
        
        async def yielder():
            recorder.events.append(("yield", 0))
            await asyncio.sleep(0)
        
        categorizer.categorize_batch = AsyncMock(side_effect=categorize_batch)
        detector.detect_batch = AsyncMock(side_effect=detect_batch)
        return BatchProcessingScheduler(
            categorizer=categorizer,
            spam_detector=detector,
            batch_size=batch_size,
            yielder=yielder,
        )
    return _make


class TestEnqueue:
    """Eligibility filtering and run start."""
    
    @pytest.mark.asyncio
    async def test_only_uncategorized_items_are_processed(self, make_scheduler, recorder, uncategorized_items):
        scheduler = make_scheduler()
        
        scheduler.enqueue(uncategorized_items)
        assert scheduler.total_count == 2
        assert scheduler.is_processing is True
        await scheduler.wait()
        
        assert recorder.categorized_batches == [[uncategorized_items[0].id, uncategorized_items[1].id]]
        assert scheduler.processed_count == 2
        assert scheduler.is_processing is False
    
    @pytest.mark.asyncio
    async def test_nothing_eligible_is_noop(self, make_scheduler, recorder, make_item):
        scheduler = make_scheduler()
        
        task = scheduler.enqueue([make_item(category=CategoryLabel.PRIMARY)])
        
        assert task is None
        assert scheduler.is_processing is False
        assert scheduler.total_count == 0
        assert recorder.events == []
    
    def test_requires_running_loop(self, make_scheduler, make_item):
        with pytest.raises(RuntimeError):
            make_scheduler().enqueue([make_item()])
    
    def test_rejects_bad_batch_size(self, make_scheduler):
        with pytest.raises(ValueError):
            make_scheduler(batch_size=0)


class TestBatching:
    """Fixed-size batches in enqueue order with a yield after each."""
    
    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [1, 49, 50, 51, 120])
    async def test_batch_count_and_yields(self, make_scheduler, recorder, make_item, count):
        scheduler = make_scheduler()
        
        scheduler.enqueue([make_item() for _ in range(count)])
        await scheduler.wait()
        
        expected = math.ceil(count / 50)
        assert recorder.batches() == expected
        assert recorder.yields() == expected
        assert scheduler.processed_count == count
    
    @pytest.mark.asyncio
    async def test_categorize_then_spam_then_yield(self, make_scheduler, recorder, make_item):
        scheduler = make_scheduler()
        
        scheduler.enqueue([make_item() for _ in range(60)])
        await scheduler.wait()
        
        assert recorder.events == [
            ("categorize", 50), ("spam", 50), ("yield", 0),
            ("categorize", 10), ("spam", 10), ("yield", 0),
        ]
    
    @pytest.mark.asyncio
    async def test_batches_follow_enqueue_order(self, make_scheduler, recorder, make_item):
        items = [make_item() for _ in range(7)]
        scheduler = make_scheduler(batch_size=3)
        
        scheduler.enqueue(items)
        await scheduler.wait()
        
        flattened = [item_id for batch in recorder.categorized_batches for item_id in batch]
        assert flattened == [item.id for item in items]
    
    @pytest.mark.asyncio
    async def test_counters_and_snapshot(self, make_scheduler, make_item):
        scheduler = make_scheduler(spam_per_batch=2)
        
        scheduler.enqueue([make_item() for _ in range(75)])
        await scheduler.wait()
        
        assert scheduler.snapshot() == BatchRunSnapshot(
            is_processing=False,
            processed_count=75,
            total_count=75,
            last_categorized_count=75,
            last_spam_count=4,
        )


class TestCancellation:
    """Cooperative cancellation at batch boundaries."""
    
    @pytest.mark.asyncio
    async def test_cancel_stops_before_next_batch(self, make_scheduler, recorder, make_item):
        scheduler = None
        
        async def cancel_during_first_batch(items, token):
            if recorder.batches() == 1:
                scheduler.cancel()
        
        scheduler = make_scheduler(categorize_hook=cancel_during_first_batch)
        task = scheduler.enqueue([make_item() for _ in range(150)])
        
        assert scheduler.is_processing is True
        await task
        
        assert recorder.batches() == 1
        assert scheduler.is_processing is False
    
    @pytest.mark.asyncio
    async def test_cancel_clears_processing_immediately(self, make_scheduler, make_item):
        scheduler = make_scheduler()
        task = scheduler.enqueue([make_item() for _ in range(10)])
        
        scheduler.cancel()
        
        assert scheduler.is_processing is False
        await task
        assert scheduler.is_processing is False
    
    @pytest.mark.asyncio
    async def test_cancel_without_run(self, make_scheduler):
        scheduler = make_scheduler()
        scheduler.cancel()
        assert scheduler.is_processing is False
    
    @pytest.mark.asyncio
    async def test_new_enqueue_supersedes_running_run(self, make_scheduler, recorder, make_item):
        started = asyncio.Event()
        release = asyncio.Event()
        
        async def block_first_run(items, token):
            if len(recorder.categorized_batches) == 1:
                started.set()
                await release.wait()
        
        scheduler = make_scheduler(categorize_hook=block_first_run, batch_size=2)
        first_items = [make_item() for _ in range(6)]
        second_items = [make_item() for _ in range(3)]
        
        first_task = scheduler.enqueue(first_items)
        await started.wait()
        second_task = scheduler.enqueue(second_items)
        assert scheduler.total_count == 3
        
        release.set()
        await asyncio.gather(first_task, second_task)
        
        first_ids = {item.id for item in first_items}
        first_batches = [b for b in recorder.categorized_batches if set(b) <= first_ids]
        assert len(first_batches) == 1
        assert scheduler.total_count == 3
        assert scheduler.processed_count == 3
        assert scheduler.is_processing is False


class TestFailureIsolation:
    """One failing item or batch never takes down the run."""
    
    @pytest.mark.asyncio
    async def test_failing_engine_calls_do_not_stop_the_run(
        self, test_settings, prompts, static_resolver_class, fake_engine_class, make_item
    ):
        engine = fake_engine_class(classify_error=RuntimeError("boom"), tokens=["primary"])
        resolver = static_resolver_class(engine)
        
        async def no_yield():
            pass
        
        scheduler = BatchProcessingScheduler(
            categorizer=CategorizationService(InferenceRepository(resolver, prompts, test_settings)),
            spam_detector=EnsembleSpamDetector(resolver, RuleEngine(), test_settings, yielder=no_yield),
            yielder=no_yield,
        )
        items = [make_item() for _ in range(120)]
        
        await scheduler.enqueue(items)
        
        assert scheduler.processed_count == 120
        assert scheduler.last_categorized_count == 120
        assert all(item.category is CategoryLabel.PRIMARY for item in items)
    
    @pytest.mark.asyncio
    async def test_batch_error_ends_run_without_raising(self, make_scheduler, recorder, make_item):
        async def explode(items, token):
            raise RuntimeError("boom")
        
        scheduler = make_scheduler(categorize_hook=explode, batch_size=2)
        
        task = scheduler.enqueue([make_item() for _ in range(4)])
        await task
        
        assert task.exception() is None
        assert recorder.batches() == 1
        assert scheduler.is_processing is False
        assert scheduler.processed_count == 0
