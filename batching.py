"""
batching.py
───────────
Apply a list of add / remove operations in paced batches.

Best effort: a rejected item is recorded and the batch carries on.
"""

from __future__ import annotations
from typing import Callable, Sequence, TypeVar

from loguru import logger

from models import BatchOutcome, Failure, RemoteError
from pacing import PacingPolicy

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    if size < 1:
        raise ValueError(f"batch size must be positive: {size}")
    return [items[i : i + size] for i in range(0, len(items), size)]


def apply_batched(
    items: Sequence[T],
    batch_size: int,
    op: Callable[[T], None],
    pacing: PacingPolicy,
    *,
    action: str,
    describe: Callable[[T], str] = str,
) -> BatchOutcome:
    """
    Call ``op`` once per item, ``batch_size`` items per batch.

    ``op`` signals failure by raising RemoteError; anything else (including
    RemoteUnavailable) propagates and ends the run.
    """
    outcome = BatchOutcome()
    batches = chunked(items, batch_size)

    for number, batch in enumerate(batches, start=1):
        logger.debug(
            "{}: batch {}/{} ({} items)", action, number, len(batches), len(batch)
        )
        for item in batch:
            entity = describe(item)
            try:
                op(item)
            except RemoteError as e:
                outcome.failed += 1
                outcome.failures.append(Failure(entity, action, e.message))
                logger.warning("{} failed for {}: {}", action, entity, e.message)
            else:
                outcome.succeeded += 1
            pacing.pause(pacing.item_delay)

        outcome.batches += 1
        pacing.pause(pacing.batch_delay)

    return outcome
