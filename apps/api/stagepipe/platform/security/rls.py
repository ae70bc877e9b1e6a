from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import false
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from stagepipe.business.projects.models import Project
from stagepipe.platform.security.scope import AccessScope, ClientScope


def apply_project_scope(query: Select[Any], scope: AccessScope) -> Select[Any]:
    """Restrict a query that selects from ``projects`` to the rows the scope may see."""

    if isinstance(scope, ClientScope):
        if not scope.allowed_client_ids:
            return query.where(false())
        return query.where(Project.client_id.in_(list(scope.allowed_client_ids)))

    if scope.tenant_account_id is not None:
        return query.where(Project.tenant_account_id == scope.tenant_account_id)
    return query


def restrict_to_projects(
    query: Select[Any],
    column: ColumnElement[Any],
    project_ids: frozenset[uuid.UUID] | None,
) -> Select[Any]:
    """Filter ``column`` to the accessible project ids; ``None`` means unrestricted."""

    if project_ids is None:
        return query
    if not project_ids:
        return query.where(false())
    return query.where(column.in_(list(project_ids)))
