from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import StrEnum


class ScopeRole(StrEnum):
    MEMBER = "member"
    CLIENT = "client"


@dataclass(frozen=True, slots=True)
class MemberScope:
    """Workspace member; restricted to its tenant account when one is known."""

    principal_id: str
    tenant_account_id: uuid.UUID | None = None
    correlation_id: str | None = None

    @property
    def role(self) -> ScopeRole:
        return ScopeRole.MEMBER


@dataclass(frozen=True, slots=True)
class ClientScope:
    """Client-organization principal; an empty ``allowed_client_ids`` grants nothing."""

    principal_id: str
    allowed_client_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    correlation_id: str | None = None

    @property
    def role(self) -> ScopeRole:
        return ScopeRole.CLIENT


AccessScope = MemberScope | ClientScope
