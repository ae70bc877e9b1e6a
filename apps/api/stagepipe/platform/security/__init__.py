from stagepipe.platform.security.repository import ScopedRepository
from stagepipe.platform.security.resolver import AccessScopeResolver, access_scope_resolver
from stagepipe.platform.security.rls import apply_project_scope, restrict_to_projects
from stagepipe.platform.security.scope import AccessScope, ClientScope, MemberScope, ScopeRole

__all__ = [
    "AccessScope",
    "AccessScopeResolver",
    "ClientScope",
    "MemberScope",
    "ScopeRole",
    "ScopedRepository",
    "access_scope_resolver",
    "apply_project_scope",
    "restrict_to_projects",
]
