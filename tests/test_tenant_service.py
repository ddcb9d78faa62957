import uuid
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from jawab.services.tenant_service import (
    BindingConflictError,
    InvalidNumberError,
    TenantNotFoundError,
    assign_number,
    bind_meta,
    remove_number,
    resolve_tenant_for_meta,
    resolve_tenant_for_voice,
    resolve_tenant_for_whatsapp,
    strip_whatsapp_prefix,
)


class TestStripWhatsappPrefix:
    def test_strips_prefix(self):
        assert strip_whatsapp_prefix("whatsapp:+971501234567") == "+971501234567"

    def test_bare_number_unchanged(self):
        assert strip_whatsapp_prefix("+971501234567") == "+971501234567"

    def test_none(self):
        assert strip_whatsapp_prefix(None) == ""


class TestResolveWhatsapp:
    def test_matches_primary_binding(self, db, make_tenant):
        make_tenant(name="Other")
        salon = make_tenant(name="Glamour Salon", whatsapp_number="+971501234567")

        resolution = resolve_tenant_for_whatsapp(db, "whatsapp:+971501234567", fallback_mode="none")

        assert resolution.tenant.id == salon.id
        assert resolution.matched_by == "primary"

    def test_matches_binding_stored_with_prefix(self, db, make_tenant):
        salon = make_tenant(whatsapp_number="whatsapp:+971501234567")

        resolution = resolve_tenant_for_whatsapp(db, "+971501234567", fallback_mode="none")

        assert resolution.tenant.id == salon.id
        assert resolution.matched_by == "primary"

    def test_matches_legacy_flat_field(self, db, make_tenant):
        salon = make_tenant(config={"whatsapp_number": "+971501234567"})

        resolution = resolve_tenant_for_whatsapp(db, "whatsapp:+971501234567", fallback_mode="none")

        assert resolution.tenant.id == salon.id
        assert resolution.matched_by == "legacy"

    def test_unbound_number_falls_back_to_first_tenant(self, db, make_tenant):
        first = make_tenant(name="First")
        make_tenant(name="Second")

        resolution = resolve_tenant_for_whatsapp(db, "+15550000000", fallback_mode="first")

        assert resolution.tenant.id == first.id
        assert resolution.matched_by == "fallback"

    def test_default_fallback_uses_configured_tenant(self, db, make_tenant):
        make_tenant(name="First")
        second = make_tenant(name="Second")

        resolution = resolve_tenant_for_whatsapp(
            db, "+15550000000", fallback_mode="default", default_tenant_id=str(second.id)
        )

        assert resolution.tenant.id == second.id

    def test_default_fallback_with_bad_id(self, db, make_tenant):
        make_tenant()

        assert resolve_tenant_for_whatsapp(db, "+15550000000", fallback_mode="default", default_tenant_id="nope") is None

    def test_none_fallback_returns_none(self, db, make_tenant):
        make_tenant()

        assert resolve_tenant_for_whatsapp(db, "+15550000000", fallback_mode="none") is None

    def test_empty_store_returns_none(self, db):
        assert resolve_tenant_for_whatsapp(db, "+15550000000", fallback_mode="first") is None

    def test_database_error_returns_none(self):
        db = Mock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))

        assert resolve_tenant_for_whatsapp(db, "+971501234567") is None
        db.rollback.assert_called_once()


class TestResolveVoice:
    def test_matches_phone_number(self, db, make_tenant):
        salon = make_tenant(phone_number="+97143334444")

        resolution = resolve_tenant_for_voice(db, "+97143334444", fallback_mode="none")

        assert resolution.tenant.id == salon.id

    def test_matches_legacy_phone(self, db, make_tenant):
        salon = make_tenant(config={"phone_number": "+97143334444"})

        resolution = resolve_tenant_for_voice(db, "+97143334444", fallback_mode="none")

        assert resolution.tenant.id == salon.id
        assert resolution.matched_by == "legacy"


class TestResolveMeta:
    def test_matches_page_id(self, db, make_tenant):
        salon = make_tenant(meta_page_id="1001")

        assert resolve_tenant_for_meta(db, "1001", fallback_mode="none").tenant.id == salon.id

    def test_matches_instagram_account(self, db, make_tenant):
        salon = make_tenant(meta_instagram_account_id="17841400000000000")

        assert resolve_tenant_for_meta(db, "17841400000000000", fallback_mode="none").tenant.id == salon.id

    def test_unknown_account_without_fallback(self, db, make_tenant):
        make_tenant(meta_page_id="1001")

        assert resolve_tenant_for_meta(db, "2002", fallback_mode="none") is None


class TestAssignNumber:
    def test_assigns_whatsapp_number(self, db, make_tenant):
        salon = make_tenant()

        tenant = assign_number(db, salon.id, "whatsapp", "whatsapp:+971501234567", sid="PN123")

        assert tenant.whatsapp_number == "+971501234567"
        assert tenant.whatsapp_number_sid == "PN123"
        assert resolve_tenant_for_whatsapp(db, "+971501234567", fallback_mode="none").tenant.id == salon.id

    def test_rejects_non_e164(self, db, make_tenant):
        salon = make_tenant()

        with pytest.raises(InvalidNumberError):
            assign_number(db, salon.id, "phone", "0501234567")

    def test_rejects_unknown_kind(self, db, make_tenant):
        salon = make_tenant()

        with pytest.raises(InvalidNumberError):
            assign_number(db, salon.id, "fax", "+971501234567")

    def test_unknown_tenant(self, db):
        with pytest.raises(TenantNotFoundError):
            assign_number(db, uuid.uuid4(), "phone", "+971501234567")

    def test_rejects_number_bound_elsewhere(self, db, make_tenant):
        make_tenant(name="Owner", phone_number="+97143334444")
        other = make_tenant(name="Other")

        with pytest.raises(BindingConflictError):
            assign_number(db, other.id, "phone", "+97143334444")

    def test_reassigning_own_number_is_allowed(self, db, make_tenant):
        salon = make_tenant(phone_number="+97143334444")

        assert assign_number(db, salon.id, "phone", "+97143334444", sid="PN9").phone_number_sid == "PN9"


class TestRemoveNumber:
    def test_clears_binding(self, db, make_tenant):
        salon = make_tenant(whatsapp_number="+971501234567", whatsapp_number_sid="PN1")

        tenant = remove_number(db, salon.id, "whatsapp")

        assert tenant.whatsapp_number is None
        assert tenant.whatsapp_number_sid is None


class TestBindMeta:
    def test_stores_binding(self, db, make_tenant):
        salon = make_tenant()

        tenant = bind_meta(db, salon.id, page_id="1001", page_name="Glamour", instagram_account_id="1784", access_token="tok")

        assert tenant.meta_page_id == "1001"
        assert tenant.meta_access_token == "tok"

    def test_rejects_page_bound_elsewhere(self, db, make_tenant):
        make_tenant(name="Owner", meta_page_id="1001")
        other = make_tenant(name="Other")

        with pytest.raises(BindingConflictError):
            bind_meta(db, other.id, page_id="1001")
