"""
Cooperative cancellation primitives for background batch work.

Batch loops check a CancellationToken at well-defined points (batch start,
before each item) instead of being pre-empted, so an in-flight engine call
always runs to completion. ``yield_control`` is the explicit hand-off point
that lets other tasks on the event loop run between units of work.
"""

import asyncio


class CancellationToken:
    """One-way flag shared between a run and whoever may cancel it."""
    
    __slots__ = ("_cancelled",)
    
    def __init__(self):
        self._cancelled = False
    
    @property
    def cancelled(self) -> bool:
        return self._cancelled
    
    def cancel(self) -> None:
        self._cancelled = True
    
    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


async def yield_control() -> None:
    """Give the event loop a chance to run other ready tasks."""
    await asyncio.sleep(0)
