from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from stagepipe.business.projects.api import router as projects_router
from stagepipe.business.reporting.pipeline.api import router as dashboard_router
from stagepipe.core.auth import Principal, get_current_principal
from stagepipe.core.config import get_settings
from stagepipe.core.errors import UnauthenticatedError
from stagepipe.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(projects_router)
router.include_router(dashboard_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(principal: Principal | None = Depends(get_current_principal)) -> dict[str, str | list[str] | None]:
    if principal is None:
        raise UnauthenticatedError()
    return {
        "sub": principal.sub,
        "role": principal.role_hint,
        "roles": principal.roles,
    }


@router.get("/metrics", tags=["system"])
def metrics(principal: Principal | None = Depends(get_current_principal)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if principal is None or "system.metrics.read" not in principal.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: system.metrics.read")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
