from dataclasses import dataclass, field

from jose import JWTError, jwt
from starlette.requests import Request

from stagepipe.core.config import get_settings


@dataclass
class Principal:
    sub: str
    role_hint: str | None = None
    roles: list[str] = field(default_factory=list)


async def get_current_principal(request: Request) -> Principal | None:
    """Resolve the caller from the bearer token; ``None`` when absent or invalid."""

    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""
    if not token:
        return None

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    subject = payload.get("sub")
    if not subject:
        return None
    roles = payload.get("roles", [])
    if not isinstance(roles, list):
        roles = []
    role_hint = payload.get("role")

    context = getattr(request.state, "context", None)
    if context is not None:
        context.principal_id = str(subject)
    return Principal(
        sub=str(subject),
        role_hint=str(role_hint) if isinstance(role_hint, str) and role_hint else None,
        roles=[str(role) for role in roles],
    )
