from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from jawab.database import get_db
from jawab.dependencies import require_admin_token
from jawab.logging_config import get_logger
from jawab.schemas.admin import MetaBind, NumberAssign, NumberRemove, TenantCreate, TenantResponse, TenantUpdate
from jawab.services.tenant_service import (
    BindingConflictError,
    InvalidNumberError,
    TenantNotFoundError,
    assign_number,
    bind_meta,
    create_tenant,
    get_tenant,
    remove_number,
    update_tenant,
)

logger = get_logger("admin")

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin_token)])

NUMBER_LABELS = {"whatsapp": "WhatsApp", "phone": "Phone"}


@router.post("/tenants", response_model=TenantResponse, status_code=201)
def create_tenant_endpoint(data: TenantCreate, db: Session = Depends(get_db)):
    return create_tenant(db, **data.model_dump())


@router.get("/tenants/{tenant_id}", response_model=TenantResponse)
def read_tenant(tenant_id: UUID, db: Session = Depends(get_db)):
    tenant = get_tenant(db, tenant_id)
    if tenant is None:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


@router.patch("/tenants/{tenant_id}", response_model=TenantResponse)
def update_tenant_endpoint(tenant_id: UUID, data: TenantUpdate, db: Session = Depends(get_db)):
    try:
        return update_tenant(db, tenant_id, **data.model_dump(exclude_unset=True))
    except TenantNotFoundError:
        raise HTTPException(status_code=404, detail="Tenant not found")


@router.put("/tenants/{tenant_id}/meta", response_model=TenantResponse)
def bind_meta_endpoint(tenant_id: UUID, data: MetaBind, db: Session = Depends(get_db)):
    try:
        return bind_meta(db, tenant_id, **data.model_dump())
    except TenantNotFoundError:
        raise HTTPException(status_code=404, detail="Tenant not found")
    except BindingConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/numbers")
def assign_number_endpoint(data: NumberAssign, db: Session = Depends(get_db)):
    try:
        tenant = assign_number(db, data.tenant_id, data.type, data.number, data.sid)
    except InvalidNumberError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except TenantNotFoundError:
        raise HTTPException(status_code=404, detail="Tenant not found")
    except BindingConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))

    number = tenant.whatsapp_number if data.type == "whatsapp" else tenant.phone_number
    return {
        "success": True,
        "tenant_id": str(tenant.id),
        "type": data.type,
        "number": number,
        "message": f"{NUMBER_LABELS[data.type]} number assigned successfully",
    }


@router.delete("/numbers")
def remove_number_endpoint(data: NumberRemove, db: Session = Depends(get_db)):
    try:
        tenant = remove_number(db, data.tenant_id, data.type)
    except TenantNotFoundError:
        raise HTTPException(status_code=404, detail="Tenant not found")

    return {
        "success": True,
        "tenant_id": str(tenant.id),
        "message": f"{NUMBER_LABELS[data.type]} number removed",
    }
