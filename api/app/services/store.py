from __future__ import annotations

import copy
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from app.services.query import AdvertPredicate
from app.services.repository import EDITABLE_ADVERT_FIELDS, RepositoryConflictError, RepositoryNotFoundError


class InMemoryAdvertStore:
    """Process-local advert repository for tests and database-less local runs."""

    def __init__(self) -> None:
        self.adverts: dict[str, dict[str, Any]] = {}
        self.accounts: dict[str, dict[str, Any]] = {}

    async def close(self) -> None:
        return None

    def add_account(self, name: str, email: str | None = None, account_id: str | None = None) -> dict[str, Any]:
        account = {"id": account_id or str(uuid4()), "name": name, "email": email}
        self.accounts[account["id"]] = account
        return dict(account)

    async def count_adverts(self, predicate: AdvertPredicate) -> int:
        return sum(1 for record in self.adverts.values() if predicate.matches(record))

    async def find_adverts(
        self,
        predicate: AdvertPredicate,
        *,
        sort_dir: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        matched = sorted(
            (record for record in self.adverts.values() if predicate.matches(record)),
            key=lambda record: record["id"],
        )
        matched.sort(key=lambda record: record["published_at"], reverse=sort_dir != "asc")
        return [self._project(record) for record in matched[offset : offset + limit]]

    async def get_advert(self, advert_id: str) -> dict[str, Any] | None:
        record = self.adverts.get(advert_id)
        return self._project(record) if record else None

    async def get_advert_by_slug(self, slug: str) -> dict[str, Any] | None:
        for record in self.adverts.values():
            if record["slug"] == slug:
                return self._project(record)
        return None

    async def get_advert_owner(self, advert_id: str) -> str | None:
        record = self.adverts.get(advert_id)
        return record["owner_id"] if record else None

    async def slug_exists(self, slug: str) -> bool:
        return any(record["slug"] == slug for record in self.adverts.values())

    async def insert_advert(self, record: dict[str, Any]) -> dict[str, Any]:
        if await self.slug_exists(record["slug"]):
            raise RepositoryConflictError("advert slug already exists")
        stored = {
            "id": record.get("id") or str(uuid4()),
            "title": record["title"],
            "image_ref": record["image_ref"],
            "description": record["description"],
            "price": Decimal(str(record["price"])),
            "category": record["category"],
            "tags": list(record.get("tags") or []),
            "owner_id": record["owner_id"],
            "published_at": record.get("published_at") or datetime.now(timezone.utc),
            "slug": record["slug"],
            "status": record["status"],
        }
        self.adverts[stored["id"]] = stored
        return self._project(stored)

    async def update_advert(self, advert_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        unknown = set(changes) - EDITABLE_ADVERT_FIELDS
        if unknown:
            raise ValueError(f"fields are not editable: {sorted(unknown)}")
        record = self.adverts.get(advert_id)
        if record is None:
            raise RepositoryNotFoundError("advert not found")
        new_slug = changes.get("slug")
        if new_slug is not None and new_slug != record["slug"] and await self.slug_exists(new_slug):
            raise RepositoryConflictError("advert slug already exists")
        for column, value in changes.items():
            if column == "price":
                value = Decimal(str(value))
            elif column == "tags":
                value = list(value or [])
            record[column] = value
        return self._project(record)

    async def delete_advert(self, advert_id: str) -> dict[str, Any] | None:
        record = self.adverts.pop(advert_id, None)
        if record is None:
            return None
        return {"id": record["id"], "image_ref": record["image_ref"]}

    async def get_account_by_name(self, name: str) -> dict[str, Any] | None:
        for account in self.accounts.values():
            if account["name"] == name:
                return dict(account)
        return None

    def _project(self, record: dict[str, Any]) -> dict[str, Any]:
        projected = copy.deepcopy(record)
        account = self.accounts.get(record["owner_id"])
        projected["owner"] = dict(account) if account else None
        return projected
