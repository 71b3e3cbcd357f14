import logging
from typing import Any

import httpx
from fastapi import Depends, Header

from app.core.auth import Principal, parse_bearer_token
from app.core.config import Settings, get_settings
from app.core.errors import CatalogError, ErrorKind

logger = logging.getLogger(__name__)


async def get_optional_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal | None:
    """Resolve the caller from a bearer token, or ``None`` when there is no usable identity."""
    token = parse_bearer_token(authorization)
    if token is None:
        return None

    if not settings.supabase_url or not settings.supabase_anon_key:
        raise CatalogError(ErrorKind.INTERNAL, "Supabase auth is not configured")

    user = await _fetch_supabase_user(
        supabase_url=settings.supabase_url,
        supabase_anon_key=settings.supabase_anon_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    if user is None:
        return None

    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        logger.info("bearer token resolved to a user without id")
        return None

    return Principal(
        subject=user_id,
        email=user.get("email") if isinstance(user.get("email"), str) else None,
        name=_resolve_display_name(user),
    )


async def _fetch_supabase_user(
    *,
    supabase_url: str,
    supabase_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any] | None:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": supabase_anon_key,
    }
    url = f"{supabase_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise CatalogError(ErrorKind.INTERNAL, "Supabase auth verification unavailable") from exc

    if response.status_code in {401, 403}:
        return None
    if response.status_code != 200:
        raise CatalogError(ErrorKind.INTERNAL, "Supabase auth verification failed")

    return response.json()


def _resolve_display_name(user: dict[str, Any]) -> str | None:
    user_metadata = user.get("user_metadata")
    if isinstance(user_metadata, dict):
        name = user_metadata.get("name")
        if isinstance(name, str) and name:
            return name
    return None
