from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stagepipe.business.workspace.models import AccountMember, ClientMember, Profile
from stagepipe.core.auth import Principal
from stagepipe.core.config import get_settings
from stagepipe.core.errors import CollaboratorUnavailableError, UnauthenticatedError
from stagepipe.platform.security.scope import AccessScope, ClientScope, MemberScope, ScopeRole


logger = logging.getLogger("stagepipe.access")


@dataclass(slots=True)
class AccessScopeResolver:
    """Turns an authenticated principal into the single scope every read and write is filtered by."""

    fallback_role: str | None = None

    def resolve(
        self,
        session: Session,
        principal: Principal | None,
        *,
        correlation_id: str | None = None,
        schedule_reconciliation: Callable[[str], None] | None = None,
    ) -> AccessScope:
        if principal is None or not principal.sub:
            raise UnauthenticatedError()

        try:
            role = self._resolve_role(session, principal)
            if role is ScopeRole.CLIENT:
                client_ids = session.scalars(
                    select(ClientMember.client_id).where(ClientMember.profile_id == principal.sub)
                ).all()
                return ClientScope(
                    principal_id=principal.sub,
                    allowed_client_ids=frozenset(client_ids),
                    correlation_id=correlation_id,
                )
            # A member without a tenant sees nothing, so a failed lookup must not fall through as "no tenant".
            account_id = self._resolve_account(session, principal.sub)
        except SQLAlchemyError as exc:
            logger.exception("access.resolve_failed", extra={"principal_id": principal.sub, "error": str(exc)})
            raise CollaboratorUnavailableError("Unable to resolve access.") from exc

        if account_id is not None and schedule_reconciliation is not None:
            schedule_reconciliation(str(account_id))
        return MemberScope(principal_id=principal.sub, tenant_account_id=account_id, correlation_id=correlation_id)

    def _resolve_role(self, session: Session, principal: Principal) -> ScopeRole:
        profile_role = session.scalar(select(Profile.role).where(Profile.id == principal.sub))
        raw_role = profile_role or principal.role_hint
        if not raw_role:
            raw_role = self.fallback_role or get_settings().fallback_profile_role
            logger.warning(
                "access.profile_missing",
                extra={"principal_id": principal.sub, "role": raw_role},
            )
        return ScopeRole.CLIENT if raw_role.lower() == ScopeRole.CLIENT.value else ScopeRole.MEMBER

    @staticmethod
    def _resolve_account(session: Session, principal_id: str) -> uuid.UUID | None:
        return session.scalar(
            select(AccountMember.account_id)
            .where(AccountMember.profile_id == principal_id)
            .order_by(AccountMember.created_at.asc())
            .limit(1)
        )


access_scope_resolver = AccessScopeResolver()
