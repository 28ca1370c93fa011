from fastapi import APIRouter, Depends
from fastapi.responses import Response

from salesdesk.activity.api import router as activity_router
from salesdesk.core.clock import utcnow
from salesdesk.core.config import get_settings
from salesdesk.core.context import CallerContext
from salesdesk.core.errors import NotFoundError
from salesdesk.core.rbac import require_admin
from salesdesk.crm.api import customers_router, leads_router, tasks_router
from salesdesk.identity.api import auth_router, users_router
from salesdesk.metrics import generate_metrics_payload, metrics_content_type
from salesdesk.reporting.api import router as dashboard_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(leads_router)
router.include_router(customers_router)
router.include_router(tasks_router)
router.include_router(activity_router)
router.include_router(dashboard_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/metrics", tags=["system"])
def metrics(caller: CallerContext = Depends(require_admin)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise NotFoundError("Route not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
