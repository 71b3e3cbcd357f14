from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Protocol

from opentelemetry import trace

from app.services.query import AdvertPredicate

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MAX_PAGE = 1_000_000_000


class CatalogSource(Protocol):
    async def count_adverts(self, predicate: AdvertPredicate) -> int: ...

    async def find_adverts(
        self,
        predicate: AdvertPredicate,
        *,
        sort_dir: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]: ...


@dataclass(slots=True, frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 12
    sort_dir: str = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_query(
        cls,
        *,
        page: str | None,
        limit: str | None,
        sort: str | None,
        default_limit: int,
        max_limit: int,
    ) -> PageRequest:
        parsed_page = min(_coerce_positive_int(page) or 1, MAX_PAGE)
        parsed_limit = min(_coerce_positive_int(limit) or default_limit, max_limit)
        sort_dir = "asc" if isinstance(sort, str) and sort.strip().lower() == "asc" else "desc"
        return cls(page=parsed_page, limit=parsed_limit, sort_dir=sort_dir)


@dataclass(slots=True)
class CatalogPage:
    items: list[dict[str, Any]] = field(default_factory=list)
    total: int = 0
    page: int = 1
    total_pages: int = 0


class CatalogReader:
    def __init__(self, repository: CatalogSource) -> None:
        self._repository = repository

    async def read_page(self, predicate: AdvertPredicate, page_request: PageRequest) -> CatalogPage:
        # The count and the slice are separate round trips; under concurrent writes
        # they may briefly disagree.
        with tracer.start_as_current_span("catalog.read_page") as span:
            span.set_attribute("catalog.page", page_request.page)
            span.set_attribute("catalog.limit", page_request.limit)
            total = await self._repository.count_adverts(predicate)
            items: list[dict[str, Any]] = []
            # Pages past the end never reach the slice query; their offset may not fit a bigint.
            if page_request.offset < total:
                items = await self._repository.find_adverts(
                    predicate,
                    sort_dir=page_request.sort_dir,
                    limit=page_request.limit,
                    offset=page_request.offset,
                )
            span.set_attribute("catalog.total", total)

        total_pages = math.ceil(total / page_request.limit) if page_request.limit else 0
        logger.debug(
            "catalog page=%s limit=%s total=%s returned=%s",
            page_request.page,
            page_request.limit,
            total,
            len(items),
        )
        return CatalogPage(items=items, total=total, page=page_request.page, total_pages=total_pages)


def _coerce_positive_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        parsed = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return None
    return parsed if parsed >= 1 else None
