from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc
from fastapi import Request

from app.core.config import Settings
from app.services.query import AdvertPredicate


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write violates a uniqueness constraint."""


EDITABLE_ADVERT_FIELDS = frozenset({"title", "description", "category", "price", "tags", "image_ref", "slug", "status"})


class AdvertRepository(Protocol):
    async def close(self) -> None: ...

    async def count_adverts(self, predicate: AdvertPredicate) -> int: ...

    async def find_adverts(
        self,
        predicate: AdvertPredicate,
        *,
        sort_dir: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]: ...

    async def get_advert(self, advert_id: str) -> dict[str, Any] | None: ...

    async def get_advert_by_slug(self, slug: str) -> dict[str, Any] | None: ...

    async def get_advert_owner(self, advert_id: str) -> str | None: ...

    async def slug_exists(self, slug: str) -> bool: ...

    async def insert_advert(self, record: dict[str, Any]) -> dict[str, Any]: ...

    async def update_advert(self, advert_id: str, changes: dict[str, Any]) -> dict[str, Any]: ...

    async def delete_advert(self, advert_id: str) -> dict[str, Any] | None: ...

    async def get_account_by_name(self, name: str) -> dict[str, Any] | None: ...


_ADVERT_COLUMNS = """
  a.id::text as id,
  a.title,
  a.image_ref,
  a.description,
  a.price,
  a.category,
  a.tags,
  a.owner_id::text as owner_id,
  a.published_at,
  a.slug,
  a.status,
  acc.name as owner_name,
  acc.email as owner_email
"""


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def count_adverts(self, predicate: AdvertPredicate) -> int:
        pool = await self._get_pool()
        params: list[Any] = []
        where_sql = predicate.to_sql(_binder(params))
        value = await pool.fetchval(f"select count(*) from adverts a where {where_sql}", *params)
        return int(value or 0)

    async def find_adverts(
        self,
        predicate: AdvertPredicate,
        *,
        sort_dir: str,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []
        bind = _binder(params)
        where_sql = predicate.to_sql(bind)
        direction = "asc" if sort_dir == "asc" else "desc"
        limit_token = bind(limit)
        offset_token = bind(offset)

        rows = await pool.fetch(
            f"""
            select {_ADVERT_COLUMNS}
            from adverts a
            left join accounts acc on acc.id = a.owner_id
            where {where_sql}
            order by a.published_at {direction}, a.id asc
            limit {limit_token}
            offset {offset_token}
            """,
            *params,
        )
        return [self._advert_row_to_dict(row) for row in rows]

    async def get_advert(self, advert_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        try:
            row = await self._fetch_advert_row(conn=pool, where_sql="a.id = $1::uuid", value=advert_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return None
        return self._advert_row_to_dict(row) if row else None

    async def get_advert_by_slug(self, slug: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        row = await self._fetch_advert_row(conn=pool, where_sql="a.slug = $1", value=slug)
        return self._advert_row_to_dict(row) if row else None

    async def get_advert_owner(self, advert_id: str) -> str | None:
        pool = await self._get_pool()
        try:
            return await pool.fetchval("select owner_id::text from adverts where id = $1::uuid", advert_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return None

    async def slug_exists(self, slug: str) -> bool:
        pool = await self._get_pool()
        return bool(await pool.fetchval("select exists(select 1 from adverts where slug = $1)", slug))

    async def insert_advert(self, record: dict[str, Any]) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    advert_id = await conn.fetchval(
                        """
                        insert into adverts (
                          title,
                          image_ref,
                          description,
                          price,
                          category,
                          tags,
                          owner_id,
                          slug,
                          status
                        )
                        values ($1, $2, $3, $4, $5, $6::text[], $7::uuid, $8, $9)
                        returning id::text
                        """,
                        record["title"],
                        record["image_ref"],
                        record["description"],
                        Decimal(str(record["price"])),
                        record["category"],
                        list(record.get("tags") or []),
                        record["owner_id"],
                        record["slug"],
                        record["status"],
                    )
                    row = await self._fetch_advert_row(conn=conn, where_sql="a.id = $1::uuid", value=advert_id)
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("advert slug already exists") from exc
        if not row:
            raise RepositoryNotFoundError("advert not found")
        return self._advert_row_to_dict(row)

    async def update_advert(self, advert_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        unknown = set(changes) - EDITABLE_ADVERT_FIELDS
        if unknown:
            raise ValueError(f"fields are not editable: {sorted(unknown)}")

        pool = await self._get_pool()
        params: list[Any] = [advert_id]
        bind = _binder(params)
        assignments: list[str] = []
        for column, value in changes.items():
            if column == "tags":
                assignments.append(f"tags = {bind(list(value or []))}::text[]")
            elif column == "price":
                assignments.append(f"price = {bind(Decimal(str(value)))}")
            else:
                assignments.append(f"{column} = {bind(value)}")

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    if assignments:
                        status = await conn.execute(
                            f"update adverts set {', '.join(assignments)} where id = $1::uuid",
                            *params,
                        )
                        if status.endswith(" 0"):
                            raise RepositoryNotFoundError("advert not found")
                    row = await self._fetch_advert_row(conn=conn, where_sql="a.id = $1::uuid", value=advert_id)
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("advert slug already exists") from exc
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("advert not found") from exc
        if not row:
            raise RepositoryNotFoundError("advert not found")
        return self._advert_row_to_dict(row)

    async def delete_advert(self, advert_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                delete from adverts
                where id = $1::uuid
                returning id::text as id, image_ref
                """,
                advert_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return None
        return dict(row) if row else None

    async def get_account_by_name(self, name: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            """
            select id::text as id, name, email
            from accounts
            where name = $1
            """,
            name,
        )
        return dict(row) if row else None

    async def _fetch_advert_row(
        self,
        *,
        conn: asyncpg.Connection | asyncpg.Pool,
        where_sql: str,
        value: Any,
    ) -> asyncpg.Record | None:
        return await conn.fetchrow(
            f"""
            select {_ADVERT_COLUMNS}
            from adverts a
            left join accounts acc on acc.id = a.owner_id
            where {where_sql}
            """,
            value,
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("AC_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _advert_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        owner = None
        if row["owner_name"] is not None:
            owner = {"id": row["owner_id"], "name": row["owner_name"], "email": row["owner_email"]}
        published_at: datetime = row["published_at"]
        return {
            "id": row["id"],
            "title": row["title"],
            "image_ref": row["image_ref"],
            "description": row["description"],
            "price": row["price"],
            "category": row["category"],
            "tags": list(row["tags"] or []),
            "owner_id": row["owner_id"],
            "owner": owner,
            "published_at": published_at,
            "slug": row["slug"],
            "status": row["status"],
        }


def _binder(params: list[Any]):
    def bind(value: Any) -> str:
        params.append(value)
        return f"${len(params)}"

    return bind


def build_repository(settings: Settings) -> AdvertRepository:
    if settings.storage_backend == "memory":
        from app.services.store import InMemoryAdvertStore

        return InMemoryAdvertStore()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )


def get_repository(request: Request) -> AdvertRepository:
    return request.app.state.repository
