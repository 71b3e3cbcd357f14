"""Composable advert filters.

Every criterion can both evaluate a record in memory and render itself into a
parameterised SQL fragment, so the in-memory store and the Postgres repository
share the exact same filter semantics.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

CATEGORIES = frozenset({"for_sale", "wanted"})
SOLD_STATUS = "sold"

Bind = Callable[[Any], str]


class Criterion(Protocol):
    def matches(self, record: Mapping[str, Any]) -> bool: ...

    def to_sql(self, bind: Bind) -> str: ...


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(slots=True, frozen=True)
class TextCriterion:
    fragment: str

    def matches(self, record: Mapping[str, Any]) -> bool:
        needle = self.fragment.casefold()
        title = str(record.get("title") or "").casefold()
        description = str(record.get("description") or "").casefold()
        return needle in title or needle in description

    def to_sql(self, bind: Bind) -> str:
        token = bind(f"%{_escape_like(self.fragment)}%")
        return f"(a.title ilike {token} or a.description ilike {token})"


@dataclass(slots=True, frozen=True)
class TagsCriterion:
    tags: frozenset[str]

    def matches(self, record: Mapping[str, Any]) -> bool:
        return not self.tags.isdisjoint(record.get("tags") or ())

    def to_sql(self, bind: Bind) -> str:
        return f"a.tags && {bind(sorted(self.tags))}::text[]"


@dataclass(slots=True, frozen=True)
class PriceRangeCriterion:
    minimum: Decimal | None = None
    maximum: Decimal | None = None

    def matches(self, record: Mapping[str, Any]) -> bool:
        price = Decimal(str(record.get("price")))
        if self.minimum is not None and price < self.minimum:
            return False
        if self.maximum is not None and price > self.maximum:
            return False
        return True

    def to_sql(self, bind: Bind) -> str:
        bounds: list[str] = []
        if self.minimum is not None:
            bounds.append(f"a.price >= {bind(self.minimum)}")
        if self.maximum is not None:
            bounds.append(f"a.price <= {bind(self.maximum)}")
        return " and ".join(bounds) if bounds else "true"


@dataclass(slots=True, frozen=True)
class CategoryCriterion:
    category: str

    def matches(self, record: Mapping[str, Any]) -> bool:
        return record.get("category") == self.category

    def to_sql(self, bind: Bind) -> str:
        return f"a.category = {bind(self.category)}"


@dataclass(slots=True, frozen=True)
class OwnerCriterion:
    owner_id: str

    def matches(self, record: Mapping[str, Any]) -> bool:
        return str(record.get("owner_id")) == self.owner_id

    def to_sql(self, bind: Bind) -> str:
        return f"a.owner_id = {bind(self.owner_id)}::uuid"


@dataclass(slots=True, frozen=True)
class ExcludeStatusCriterion:
    statuses: frozenset[str]

    def matches(self, record: Mapping[str, Any]) -> bool:
        return record.get("status") not in self.statuses

    def to_sql(self, bind: Bind) -> str:
        return f"a.status <> all({bind(sorted(self.statuses))}::text[])"


@dataclass(slots=True, frozen=True)
class AdvertPredicate:
    """AND-combination of criteria. An empty predicate matches everything."""

    criteria: tuple[Criterion, ...] = ()

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(criterion.matches(record) for criterion in self.criteria)

    def to_sql(self, bind: Bind) -> str:
        if not self.criteria:
            return "true"
        return " and ".join(f"({criterion.to_sql(bind)})" for criterion in self.criteria)


@dataclass(slots=True, frozen=True)
class AdvertFilters:
    text: str | None = None
    tags: frozenset[str] = field(default_factory=frozenset)
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    category: str | None = None

    @classmethod
    def from_query(
        cls,
        *,
        name: str | None = None,
        tag: str | Iterable[str] | None = None,
        min_price: str | None = None,
        max_price: str | None = None,
        category: str | None = None,
    ) -> AdvertFilters:
        """Parse raw request values leniently; anything malformed is dropped, never rejected."""
        normalized_category = category.strip() if isinstance(category, str) else None
        return cls(
            text=_coerce_text(name),
            tags=_coerce_tags(tag),
            min_price=_coerce_price(min_price),
            max_price=_coerce_price(max_price),
            category=normalized_category if normalized_category in CATEGORIES else None,
        )


def build_catalog_predicate(filters: AdvertFilters) -> AdvertPredicate:
    """Predicate for the public catalog: the filters plus the hidden-when-sold rule."""
    criteria = _filter_criteria(filters)
    criteria.append(ExcludeStatusCriterion(frozenset({SOLD_STATUS})))
    return AdvertPredicate(tuple(criteria))


def build_owner_predicate(filters: AdvertFilters, *, owner_id: str) -> AdvertPredicate:
    """Predicate for one owner's adverts; every status stays visible."""
    criteria: list[Criterion] = [OwnerCriterion(owner_id)]
    criteria.extend(_filter_criteria(filters))
    return AdvertPredicate(tuple(criteria))


def _filter_criteria(filters: AdvertFilters) -> list[Criterion]:
    criteria: list[Criterion] = []
    if filters.text:
        criteria.append(TextCriterion(filters.text))
    if filters.tags:
        criteria.append(TagsCriterion(filters.tags))
    if filters.min_price is not None or filters.max_price is not None:
        criteria.append(PriceRangeCriterion(filters.min_price, filters.max_price))
    if filters.category:
        criteria.append(CategoryCriterion(filters.category))
    return criteria


def _coerce_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value if value.strip() else None


def _coerce_tags(value: str | Iterable[str] | None) -> frozenset[str]:
    if value is None:
        return frozenset()
    chunks = value.split(",") if isinstance(value, str) else [part for item in value for part in str(item).split(",")]
    return frozenset(chunk.strip() for chunk in chunks if chunk.strip())


def _coerce_price(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed
