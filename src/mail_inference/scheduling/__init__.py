"""Background batch scheduling with cooperative cancellation."""

from mail_inference.cancellation import CancellationToken, yield_control
from mail_inference.scheduling.scheduler import BatchProcessingScheduler, DEFAULT_BATCH_SIZE

__all__ = [
    "BatchProcessingScheduler",
    "CancellationToken",
    "DEFAULT_BATCH_SIZE",
    "yield_control",
]
