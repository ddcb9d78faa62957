import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jawab.config import settings
from jawab.logging_config import get_logger
from jawab.models import Tenant

logger = get_logger("tenant_service")

WHATSAPP_PREFIX = "whatsapp:"
E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")

NUMBER_FIELDS = {
    "whatsapp": ("whatsapp_number", "whatsapp_number_sid"),
    "phone": ("phone_number", "phone_number_sid"),
}


class TenantNotFoundError(Exception):
    def __init__(self, tenant_id):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant not found: {tenant_id}")


class InvalidNumberError(ValueError):
    pass


class BindingConflictError(Exception):
    def __init__(self, kind: str, number: str, owner_id):
        self.kind = kind
        self.number = number
        self.owner_id = owner_id
        super().__init__(f"{kind} number {number} is already bound to tenant {owner_id}")


@dataclass
class TenantResolution:
    tenant: Tenant
    matched_by: str  # primary, legacy, fallback


def strip_whatsapp_prefix(number: Optional[str]) -> str:
    value = (number or "").strip()
    if value.lower().startswith(WHATSAPP_PREFIX):
        value = value[len(WHATSAPP_PREFIX):]
    return value.strip()


def _as_uuid(value: Union[str, UUID, None]) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _fallback_tenant(db: Session, mode: str, default_tenant_id: Optional[str]) -> Optional[Tenant]:
    if mode == "none":
        return None
    if mode == "default":
        tenant_uuid = _as_uuid(default_tenant_id)
        if tenant_uuid is None:
            logger.warning("Fallback mode 'default' but DEFAULT_TENANT_ID is missing or invalid")
            return None
        return db.get(Tenant, tenant_uuid)
    return db.query(Tenant).order_by(Tenant.created_at, Tenant.id).first()


def _resolve(
    db: Session,
    channel: str,
    identifier: str,
    lookups: list[tuple[str, Callable[[], Optional[Tenant]]]],
    fallback_mode: Optional[str],
    default_tenant_id: Optional[str],
) -> Optional[TenantResolution]:
    mode = fallback_mode or settings.tenant_fallback_mode
    default_id = default_tenant_id if default_tenant_id is not None else settings.default_tenant_id
    try:
        for matched_by, lookup in lookups:
            tenant = lookup()
            if tenant is not None:
                return TenantResolution(tenant=tenant, matched_by=matched_by)

        tenant = _fallback_tenant(db, mode, default_id)
    except SQLAlchemyError as e:
        logger.error(
            f"Tenant lookup failed: {e}",
            extra={"context": {"channel": channel, "identifier": identifier}},
        )
        db.rollback()
        return None

    if tenant is None:
        logger.warning(
            "No tenant for identifier",
            extra={"context": {"channel": channel, "identifier": identifier, "fallback_mode": mode}},
        )
        return None

    logger.warning(
        "Tenant resolved by fallback",
        extra={"context": {"channel": channel, "identifier": identifier, "tenant_id": str(tenant.id), "fallback_mode": mode}},
    )
    return TenantResolution(tenant=tenant, matched_by="fallback")


def resolve_tenant_for_whatsapp(
    db: Session,
    number: Optional[str],
    fallback_mode: Optional[str] = None,
    default_tenant_id: Optional[str] = None,
) -> Optional[TenantResolution]:
    """Resolve tenant by the WhatsApp number a message was sent to.

    Order: bare number, prefixed number, legacy flat field, then fallback.
    """
    bare = strip_whatsapp_prefix(number)
    prefixed = f"{WHATSAPP_PREFIX}{bare}"
    lookups = []
    if bare:
        lookups = [
            ("primary", lambda: db.query(Tenant).filter(Tenant.whatsapp_number == bare).first()),
            ("primary", lambda: db.query(Tenant).filter(Tenant.whatsapp_number == prefixed).first()),
            ("legacy", lambda: db.query(Tenant).filter(Tenant.config["whatsapp_number"].as_string() == bare).first()),
        ]
    return _resolve(db, "whatsapp", bare, lookups, fallback_mode, default_tenant_id)


def resolve_tenant_for_voice(
    db: Session,
    number: Optional[str],
    fallback_mode: Optional[str] = None,
    default_tenant_id: Optional[str] = None,
) -> Optional[TenantResolution]:
    """Resolve tenant by the dialled phone number."""
    dialled = (number or "").strip()
    lookups = []
    if dialled:
        lookups = [
            ("primary", lambda: db.query(Tenant).filter(Tenant.phone_number == dialled).first()),
            ("legacy", lambda: db.query(Tenant).filter(Tenant.config["phone_number"].as_string() == dialled).first()),
        ]
    return _resolve(db, "voice", dialled, lookups, fallback_mode, default_tenant_id)


def resolve_tenant_for_meta(
    db: Session,
    page_or_account_id: Optional[str],
    fallback_mode: Optional[str] = None,
    default_tenant_id: Optional[str] = None,
) -> Optional[TenantResolution]:
    """Resolve tenant by Facebook page id, then Instagram account id."""
    account_id = str(page_or_account_id or "").strip()
    lookups = []
    if account_id:
        lookups = [
            ("primary", lambda: db.query(Tenant).filter(Tenant.meta_page_id == account_id).first()),
            ("primary", lambda: db.query(Tenant).filter(Tenant.meta_instagram_account_id == account_id).first()),
        ]
    return _resolve(db, "meta", account_id, lookups, fallback_mode, default_tenant_id)


def get_tenant(db: Session, tenant_id: Union[str, UUID]) -> Optional[Tenant]:
    tenant_uuid = _as_uuid(tenant_id)
    if tenant_uuid is None:
        return None
    return db.get(Tenant, tenant_uuid)


def create_tenant(db: Session, **fields) -> Tenant:
    now = datetime.now(timezone.utc)
    tenant = Tenant(created_at=now, updated_at=now, **fields)
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    logger.info(f"Tenant created: {tenant.id}", extra={"context": {"tenant_id": str(tenant.id), "name": tenant.name}})
    return tenant


def update_tenant(db: Session, tenant_id: Union[str, UUID], **fields) -> Tenant:
    tenant = get_tenant(db, tenant_id)
    if tenant is None:
        raise TenantNotFoundError(tenant_id)
    for key, value in fields.items():
        setattr(tenant, key, value)
    tenant.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(tenant)
    return tenant


def assign_number(
    db: Session,
    tenant_id: Union[str, UUID],
    kind: str,
    number: str,
    sid: Optional[str] = None,
) -> Tenant:
    """Bind a WhatsApp or phone number to a tenant.

    Raises:
        InvalidNumberError: unknown kind or number not in E.164 format
        TenantNotFoundError: tenant does not exist
        BindingConflictError: number already bound to another tenant
    """
    if kind not in NUMBER_FIELDS:
        raise InvalidNumberError('type must be "whatsapp" or "phone"')
    number = strip_whatsapp_prefix(number) if kind == "whatsapp" else (number or "").strip()
    if not E164_PATTERN.match(number):
        raise InvalidNumberError("Number must be in E.164 format (e.g., +14155238886)")

    tenant = get_tenant(db, tenant_id)
    if tenant is None:
        raise TenantNotFoundError(tenant_id)

    number_field, sid_field = NUMBER_FIELDS[kind]
    column = getattr(Tenant, number_field)
    owner = db.query(Tenant).filter(column == number, Tenant.id != tenant.id).first()
    if owner is not None:
        raise BindingConflictError(kind, number, owner.id)

    setattr(tenant, number_field, number)
    setattr(tenant, sid_field, sid)
    tenant.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(tenant)
    logger.info(
        f"Assigned {kind} number",
        extra={"context": {"tenant_id": str(tenant.id), "kind": kind, "number": number}},
    )
    return tenant


def remove_number(db: Session, tenant_id: Union[str, UUID], kind: str) -> Tenant:
    if kind not in NUMBER_FIELDS:
        raise InvalidNumberError('type must be "whatsapp" or "phone"')
    tenant = get_tenant(db, tenant_id)
    if tenant is None:
        raise TenantNotFoundError(tenant_id)

    number_field, sid_field = NUMBER_FIELDS[kind]
    setattr(tenant, number_field, None)
    setattr(tenant, sid_field, None)
    tenant.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(tenant)
    logger.info(f"Removed {kind} number", extra={"context": {"tenant_id": str(tenant.id), "kind": kind}})
    return tenant


def bind_meta(
    db: Session,
    tenant_id: Union[str, UUID],
    page_id: Optional[str] = None,
    page_name: Optional[str] = None,
    instagram_account_id: Optional[str] = None,
    access_token: Optional[str] = None,
) -> Tenant:
    """Store the result of the Meta OAuth handshake on a tenant."""
    tenant = get_tenant(db, tenant_id)
    if tenant is None:
        raise TenantNotFoundError(tenant_id)

    for field, value in (
        ("meta_page_id", page_id),
        ("meta_instagram_account_id", instagram_account_id),
    ):
        if not value:
            continue
        owner = db.query(Tenant).filter(getattr(Tenant, field) == value, Tenant.id != tenant.id).first()
        if owner is not None:
            raise BindingConflictError("meta", value, owner.id)

    tenant.meta_page_id = page_id
    tenant.meta_page_name = page_name
    tenant.meta_instagram_account_id = instagram_account_id
    tenant.meta_access_token = access_token
    tenant.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(tenant)
    logger.info("Meta binding stored", extra={"context": {"tenant_id": str(tenant.id), "page_id": page_id}})
    return tenant
