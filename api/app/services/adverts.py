from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from opentelemetry import trace

from app.core.auth import Principal
from app.core.errors import CatalogError, ErrorKind
from app.services.background import DetachedTasks
from app.services.catalog import CatalogPage, CatalogReader, PageRequest
from app.services.lifecycle import AdvertLifecycle, TransitionVerdict
from app.services.object_store import ObjectStore, build_image_key
from app.services.ownership import OwnershipDecision, OwnershipGate
from app.services.query import CATEGORIES, AdvertFilters, build_catalog_predicate, build_owner_predicate
from app.services.repository import AdvertRepository, RepositoryConflictError, RepositoryNotFoundError
from app.services.slugs import unique_slug

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_TRANSITION_MESSAGES = {
    TransitionVerdict.UNKNOWN_STATUS: "status is not one of the advert statuses",
    TransitionVerdict.TERMINAL: "advert is sold and its status can no longer change",
    TransitionVerdict.NO_OP: "advert already has the requested status",
}


@dataclass(slots=True, frozen=True)
class ImageUpload:
    filename: str | None
    content: bytes
    content_type: str | None = None


class AdvertService:
    def __init__(
        self,
        *,
        repository: AdvertRepository,
        object_store: ObjectStore,
        lifecycle: AdvertLifecycle,
        detached_tasks: DetachedTasks,
    ) -> None:
        self._repository = repository
        self._object_store = object_store
        self._lifecycle = lifecycle
        self._detached_tasks = detached_tasks
        self._reader = CatalogReader(repository)
        self._gate = OwnershipGate(repository)

    @property
    def lifecycle(self) -> AdvertLifecycle:
        return self._lifecycle

    async def list_catalog(self, filters: AdvertFilters, page_request: PageRequest) -> CatalogPage:
        return await self._reader.read_page(build_catalog_predicate(filters), page_request)

    async def list_by_owner(self, owner_name: str, filters: AdvertFilters, page_request: PageRequest) -> CatalogPage:
        account = await self._repository.get_account_by_name(owner_name)
        if account is None:
            raise CatalogError(ErrorKind.NOT_FOUND, "owner not found")
        predicate = build_owner_predicate(filters, owner_id=str(account["id"]))
        return await self._reader.read_page(predicate, page_request)

    async def get_by_slug(self, slug: str) -> dict[str, Any] | None:
        return await self._repository.get_advert_by_slug(slug)

    async def create_advert(
        self,
        principal: Principal | None,
        *,
        title: str | None,
        description: str | None,
        category: str | None,
        price: str | None,
        tags: Iterable[str] | None,
        image: ImageUpload | None,
    ) -> dict[str, Any]:
        if principal is None:
            raise CatalogError(ErrorKind.UNAUTHENTICATED, "authentication required")

        fields = {"title": title, "description": description, "category": category, "price": price}
        missing = [name for name, value in fields.items() if value is None or not str(value).strip()]
        if image is None or not image.content:
            missing.append("image")
        if missing or image is None:
            raise CatalogError(ErrorKind.VALIDATION, f"missing required fields: {', '.join(missing)}")

        parsed_price = _parse_price(price)
        parsed_category = _parse_category(str(category))

        with tracer.start_as_current_span("adverts.create"):
            image_key = build_image_key(image.filename)
            await self._object_store.put(image_key, image.content, image.content_type)
            slug = await unique_slug(str(title), self._repository.slug_exists)
            try:
                advert = await self._repository.insert_advert(
                    {
                        "title": str(title).strip(),
                        "image_ref": image_key,
                        "description": description,
                        "price": parsed_price,
                        "category": parsed_category,
                        "tags": _normalize_tags(tags),
                        "owner_id": principal.subject,
                        "slug": slug,
                        "status": self._lifecycle.initial_status,
                    }
                )
            except RepositoryConflictError as exc:
                self._release_image(image_key)
                raise CatalogError(ErrorKind.INTERNAL, str(exc)) from exc

        logger.info("advert created id=%s slug=%s owner=%s", advert["id"], advert["slug"], principal.subject)
        return advert

    async def edit_advert(
        self,
        advert_id: str,
        principal: Principal | None,
        *,
        title: str | None = None,
        description: str | None = None,
        category: str | None = None,
        price: str | None = None,
        tags: Iterable[str] | None = None,
        image: ImageUpload | None = None,
    ) -> dict[str, Any]:
        existing = await self._authorize_owner(advert_id, principal, action="edit")

        changes: dict[str, Any] = {}
        if title is not None and title.strip():
            changes["title"] = title.strip()
        if description:
            changes["description"] = description
        if category:
            changes["category"] = _parse_category(category)
        if price is not None and str(price).strip():
            changes["price"] = _parse_price(price)
        if tags is not None:
            changes["tags"] = _normalize_tags(tags)

        if "title" in changes and changes["title"] != existing["title"]:
            current_slug = existing["slug"]

            async def slug_taken(candidate: str) -> bool:
                return candidate != current_slug and await self._repository.slug_exists(candidate)

            changes["slug"] = await unique_slug(changes["title"], slug_taken)

        old_image_key: str | None = None
        with tracer.start_as_current_span("adverts.edit"):
            if image is not None and image.content:
                new_image_key = build_image_key(image.filename)
                await self._object_store.put(new_image_key, image.content, image.content_type)
                changes["image_ref"] = new_image_key
                old_image_key = existing.get("image_ref") or None

            try:
                advert = await self._repository.update_advert(advert_id, changes)
            except RepositoryNotFoundError as exc:
                raise CatalogError(ErrorKind.NOT_FOUND, "advert not found") from exc
            except RepositoryConflictError as exc:
                raise CatalogError(ErrorKind.INTERNAL, str(exc)) from exc

            if old_image_key:
                try:
                    await self._object_store.delete(old_image_key)
                except Exception:
                    logger.exception("failed to release replaced image key=%s advert=%s", old_image_key, advert_id)

        logger.info("advert edited id=%s fields=%s", advert_id, sorted(changes))
        return advert

    async def change_status(self, advert_id: str, principal: Principal | None, status: str | None) -> dict[str, Any]:
        existing = await self._authorize_owner(advert_id, principal, action="change the status of")

        verdict = self._lifecycle.evaluate(existing["status"], status)
        if not verdict.allowed:
            raise CatalogError(ErrorKind.VALIDATION, _TRANSITION_MESSAGES[verdict])

        with tracer.start_as_current_span("adverts.change_status") as span:
            span.set_attribute("advert.from_status", existing["status"])
            span.set_attribute("advert.to_status", status)
            try:
                advert = await self._repository.update_advert(advert_id, {"status": status})
            except RepositoryNotFoundError as exc:
                raise CatalogError(ErrorKind.NOT_FOUND, "advert not found") from exc

        logger.info("advert status changed id=%s from=%s to=%s", advert_id, existing["status"], status)
        return advert

    async def delete_advert(self, advert_id: str, principal: Principal | None) -> None:
        await self._authorize_owner(advert_id, principal, action="delete")

        with tracer.start_as_current_span("adverts.delete"):
            deleted = await self._repository.delete_advert(advert_id)
        if deleted is None:
            raise CatalogError(ErrorKind.NOT_FOUND, "advert not found")

        image_key = deleted.get("image_ref")
        if image_key:
            self._release_image(image_key)
        logger.info("advert deleted id=%s", advert_id)

    def _release_image(self, image_key: str) -> None:
        self._detached_tasks.spawn(self._object_store.delete(image_key), name=f"release-image:{image_key}")

    async def _authorize_owner(self, advert_id: str, principal: Principal | None, *, action: str) -> dict[str, Any]:
        _require_advert_id(advert_id)
        if principal is None:
            raise CatalogError(ErrorKind.UNAUTHENTICATED, "authentication required")

        existing = await self._repository.get_advert(advert_id)
        if existing is None:
            raise CatalogError(ErrorKind.NOT_FOUND, "advert not found")

        decision = self._gate.decide(existing["owner_id"], principal)
        if decision is not OwnershipDecision.OWNER:
            raise CatalogError(ErrorKind.FORBIDDEN, f"only the owner can {action} this advert")
        return existing


def _require_advert_id(advert_id: str) -> None:
    try:
        UUID(advert_id)
    except (TypeError, ValueError) as exc:
        raise CatalogError(ErrorKind.VALIDATION, "invalid advert id format") from exc


def _parse_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise CatalogError(ErrorKind.VALIDATION, "price must be a number") from exc
    if not price.is_finite() or price < 0:
        raise CatalogError(ErrorKind.VALIDATION, "price must be a non-negative number")
    return price


def _parse_category(value: str) -> str:
    category = value.strip()
    if category not in CATEGORIES:
        raise CatalogError(ErrorKind.VALIDATION, f"category must be one of {sorted(CATEGORIES)}")
    return category


def _normalize_tags(tags: Iterable[str] | None) -> list[str]:
    if tags is None:
        return []
    normalized: list[str] = []
    for item in tags:
        for chunk in str(item).split(","):
            tag = chunk.strip()
            if tag and tag not in normalized:
                normalized.append(tag)
    return normalized
