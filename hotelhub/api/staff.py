"""Staff profile endpoints.

Every handler reads through the tenant-scoped repository and makes an
explicit, target-aware authorization call before acting.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field

from hotelhub.auth.middleware import get_current_user
from hotelhub.auth.models import AuthenticatedUser
from hotelhub.authz.models import Scope
from hotelhub.tenancy.context import TenantContext
from hotelhub.tenancy.middleware import get_tenant_context

router = APIRouter(prefix="/staff", tags=["Staff"])

RESOURCE = "user"


def _repository(request: Request):
    return request.app.state.services.repository(RESOURCE)


def _engine(request: Request):
    return request.app.state.services.engine


# =============================================================================
# Request/Response Models
# =============================================================================


class CreateStaffRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    position: str | None = None
    property_id: str | None = None
    department_id: str | None = None
    # Only honoured for unscoped platform callers
    organization_id: str | None = None


class UpdateStaffRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    email: str | None = Field(default=None, max_length=320)
    position: str | None = None
    status: str | None = Field(default=None, pattern="^(active|on_leave|terminated)$")
    department_id: str | None = None


class StaffResponse(BaseModel):
    id: str
    organization_id: str
    property_id: str | None = None
    department_id: str | None = None
    name: str
    email: str | None = None
    position: str | None = None
    status: str = "active"


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=list[StaffResponse])
async def list_staff(
    request: Request,
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user: AuthenticatedUser = Depends(get_current_user),
    context: TenantContext = Depends(get_tenant_context),
) -> list[dict[str, Any]]:
    """List staff visible to the caller. The tenant filter decides the breadth."""
    await _engine(request).enforce(user, RESOURCE, "read", Scope.OWN, context=context)
    where = {"status": status_filter} if status_filter else None
    return await _repository(request).list(
        context, where, limit=limit, offset=offset, order_by="name"
    )


@router.get("/{staff_id}", response_model=StaffResponse)
async def get_staff(
    staff_id: str,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    context: TenantContext = Depends(get_tenant_context),
) -> dict[str, Any]:
    repository = _repository(request)
    row = await repository.get(context, staff_id)
    target = repository.attributes(row)
    await _engine(request).enforce(
        user, RESOURCE, "read", context.scope_of(target), target, context=context
    )
    return row


@router.post("", response_model=StaffResponse, status_code=status.HTTP_201_CREATED)
async def create_staff(
    body: CreateStaffRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    context: TenantContext = Depends(get_tenant_context),
) -> dict[str, Any]:
    repository = _repository(request)
    data = body.model_dump(exclude_none=True) | {"status": "active"}
    if not context.unscoped:
        data.pop("organization_id", None)

    # Authorize against the record as it will be stored
    preview = repository.query_filter.ensure_tenant_fields(data, context, repository.entity)
    target = repository.attributes(preview)
    await _engine(request).enforce(
        user, RESOURCE, "create", context.scope_of(target), target, context=context
    )
    return await repository.create(context, data)


@router.patch("/{staff_id}", response_model=StaffResponse)
async def update_staff(
    staff_id: str,
    body: UpdateStaffRequest,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    context: TenantContext = Depends(get_tenant_context),
) -> dict[str, Any]:
    repository = _repository(request)
    row = await repository.get(context, staff_id)
    target = repository.attributes(row)
    await _engine(request).enforce(
        user, RESOURCE, "update", context.scope_of(target), target, context=context
    )
    return await repository.update(context, staff_id, body.model_dump(exclude_none=True))


@router.delete("/{staff_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_staff(
    staff_id: str,
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    context: TenantContext = Depends(get_tenant_context),
) -> None:
    repository = _repository(request)
    row = await repository.get(context, staff_id)
    target = repository.attributes(row)
    await _engine(request).enforce(
        user, RESOURCE, "delete", context.scope_of(target), target, context=context
    )
    await repository.delete(context, staff_id)
