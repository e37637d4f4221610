from typing import Annotated

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_hub.core.exceptions import AuthenticationError
from affiliate_hub.core.security import decode_token
from affiliate_hub.database import get_db
from affiliate_hub.schemas.common import PaginationParams
from affiliate_hub.services.experiment_service import (
    ExperimentBucketer,
    ExperimentRegistry,
    default_registry,
)

security = HTTPBearer(auto_error=False)

_registry: ExperimentRegistry | None = None


async def get_current_admin(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    if not credentials:
        raise AuthenticationError("Not authenticated")

    payload = decode_token(credentials.credentials, token_type="admin")
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Invalid token payload")

    return subject


def get_pagination_params(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=200, description="Items per page"),
) -> PaginationParams:
    return PaginationParams(page=page, page_size=page_size)


def get_experiment_registry() -> ExperimentRegistry:
    global _registry
    if _registry is None:
        _registry = default_registry()
    return _registry


def get_bucketer(
    registry: Annotated[ExperimentRegistry, Depends(get_experiment_registry)],
) -> ExperimentBucketer:
    return ExperimentBucketer(registry)


AdminUser = Annotated[str, Depends(get_current_admin)]
Pagination = Annotated[PaginationParams, Depends(get_pagination_params)]
Bucketer = Annotated[ExperimentBucketer, Depends(get_bucketer)]
DB = Annotated[AsyncSession, Depends(get_db)]
