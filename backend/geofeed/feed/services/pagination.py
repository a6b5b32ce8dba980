"""Page-by-page loading for the list consumption mode."""

from __future__ import annotations

from typing import Awaitable, Callable, Sequence

from geofeed.feed.domain.exceptions import ValidationError
from geofeed.feed.domain.models import AnnotatedContentItem, ContentItem
from geofeed.obs import metrics as obs_metrics

PageFetcher = Callable[[int, int], Awaitable[list[ContentItem]]]
Annotator = Callable[[Sequence[ContentItem]], Awaitable[list[AnnotatedContentItem]]]


class PaginationController:
    """Drives the annotate pipeline one page at a time.

    A page shorter than ``page_size`` marks the feed as exhausted. When the
    last page is exactly full, one more (empty) page is requested before
    exhaustion is detected.

    Not reentrant: callers must let ``load_next`` settle before calling it
    again.
    """

    def __init__(
        self,
        fetch_page: PageFetcher,
        annotate: Annotator,
        *,
        page_size: int,
        page_index: int = 0,
    ) -> None:
        if page_size <= 0:
            raise ValidationError("invalid_page_size")
        if page_index < 0:
            raise ValidationError("invalid_page_index")
        self._fetch_page = fetch_page
        self._annotate = annotate
        self.page_size = page_size
        self.page_index = page_index
        self.exhausted = False

    async def load_next(self) -> list[AnnotatedContentItem]:
        if self.exhausted:
            return []
        items = await self._fetch_page(self.page_index * self.page_size, self.page_size)
        annotated = await self._annotate(items)
        self.page_index += 1
        self.exhausted = len(items) < self.page_size
        obs_metrics.inc_page_loaded(self.exhausted)
        return annotated


__all__ = ["PaginationController"]
