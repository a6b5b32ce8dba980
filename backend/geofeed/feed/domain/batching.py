"""Batch planning for engagement lookups.

Identifiers are sent inline with each count store request, so a chunk is
bounded both by the store's row cap and by the length of the request that
carries it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence, TypeVar

from geofeed.feed.domain.exceptions import ConfigurationError
from geofeed.obs import metrics as obs_metrics
from geofeed.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

SEPARATOR_LENGTH = 1


@dataclass(slots=True, frozen=True)
class BatchConstraints:
    max_batch_size: int
    max_request_length: int
    estimated_id_length: int
    fixed_overhead: int = 0
    separator_length: int = SEPARATOR_LENGTH

    @classmethod
    def from_settings(cls) -> "BatchConstraints":
        return cls(
            max_batch_size=settings.feed_max_batch_size,
            max_request_length=settings.feed_max_request_length,
            estimated_id_length=settings.feed_estimated_id_length,
            fixed_overhead=settings.feed_request_overhead,
        )


def safe_batch_size(total: int, constraints: BatchConstraints) -> int:
    """Return the largest chunk size that satisfies every constraint."""

    per_id = constraints.estimated_id_length + constraints.separator_length
    if per_id <= 0:
        raise ConfigurationError("non_positive_id_length")
    by_length = (constraints.max_request_length - constraints.fixed_overhead) // per_id
    size = min(constraints.max_batch_size, by_length, total)
    if size <= 0:
        raise ConfigurationError("non_positive_batch_size")
    return size


def plan(ids: Sequence[T], constraints: BatchConstraints) -> list[list[T]]:
    """Partition ``ids`` into order-preserving chunks of the safe batch size."""

    if not ids:
        return []
    size = safe_batch_size(len(ids), constraints)
    return [list(ids[start : start + size]) for start in range(0, len(ids), size)]


def plan_or_fallback(
    ids: Sequence[T],
    constraints: BatchConstraints,
    *,
    fallback_size: int | None = None,
) -> list[list[T]]:
    """Plan chunks, dropping to a conservative fixed size on impossible constraints."""

    try:
        return plan(ids, constraints)
    except ConfigurationError as exc:
        size = max(1, fallback_size or settings.feed_fallback_batch_size)
        logger.error(
            "feed.batch_plan_fallback",
            extra={"reason": exc.detail, "fallback_size": size, "ids": len(ids)},
        )
        obs_metrics.inc_planner_fallback()
        return [list(ids[start : start + size]) for start in range(0, len(ids), size)]
