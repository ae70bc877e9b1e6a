from __future__ import annotations

from typing import Any

from sqlalchemy.sql import Select

from stagepipe.platform.security.rls import apply_project_scope
from stagepipe.platform.security.scope import AccessScope


class ScopedRepository:
    resource = ""

    def apply_scope_query(self, query: Select[Any], scope: AccessScope) -> Select[Any]:
        return apply_project_scope(query, scope)
