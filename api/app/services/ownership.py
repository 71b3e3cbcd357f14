from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from app.core.auth import Principal


class OwnerLookup(Protocol):
    async def get_advert_owner(self, advert_id: str) -> str | None: ...


class OwnershipDecision(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    OWNER = "owner"
    NOT_OWNER = "not_owner"

    @property
    def is_owner(self) -> bool:
        return self is OwnershipDecision.OWNER


class OwnershipGate:
    """Compares the caller against an advert's stored owner.

    Only the owner projection is loaded. A missing advert reads as
    ``NOT_OWNER``; callers that need to tell 404 from 403 check existence
    themselves.
    """

    def __init__(self, repository: OwnerLookup) -> None:
        self._repository = repository

    async def check(self, advert_id: str, principal: Principal | None) -> OwnershipDecision:
        if principal is None:
            return OwnershipDecision.UNAUTHENTICATED
        return self.decide(await self._repository.get_advert_owner(advert_id), principal)

    @staticmethod
    def decide(owner_id: Any, principal: Principal | None) -> OwnershipDecision:
        """Judge an owner id the caller already holds, without another lookup."""
        if principal is None:
            return OwnershipDecision.UNAUTHENTICATED
        if owner_id is not None and str(owner_id) == principal.subject:
            return OwnershipDecision.OWNER
        return OwnershipDecision.NOT_OWNER
