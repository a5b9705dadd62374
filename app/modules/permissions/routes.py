import logging
from fastapi import APIRouter, Depends
from app.core.exceptions import InvalidRequestError
from app.database.gateway import AccessStoreGateway, get_gateway
from app.modules.permissions.schemas import PermissionsRequest, PermissionsResponse
from app.modules.permissions.service import PermissionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["permissions"])


def get_permission_service(gateway: AccessStoreGateway = Depends(get_gateway)) -> PermissionService:
    return PermissionService(gateway)


@router.post("/permissions", response_model=PermissionsResponse)
async def get_permissions(
    request: PermissionsRequest,
    service: PermissionService = Depends(get_permission_service)
):
    """Resolve the experiments visible to a user (admin grants expanded per experiment)"""
    email = (request.email or "").strip()
    if not email:
        logger.info("[POST /permissions] Missing email in request body")
        raise InvalidRequestError("Email is required")
    permissions = await service.resolve_permissions(email)
    return PermissionsResponse(success=True, permissions=permissions)
