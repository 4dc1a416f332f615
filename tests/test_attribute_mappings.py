"""Attribute mapping inheritance: organization → application → built-in defaults."""

import pytest

from scimgate.core.errors import ValidationError
from scimgate.models.attribute_mapping import MAPPED_FIELDS
from scimgate.provisioning.scope import Scope

APP_SCOPE = Scope("app_1", "env_prod")
ORG_SCOPE = Scope("app_1", "env_prod", "org_acme")


@pytest.mark.asyncio
async def test_defaults_without_any_rows(plane):
    effective = await plane.mappings.get_effective(APP_SCOPE)
    assert effective.values["username_field"] == "userName"
    assert effective.values["email_field"] == "emails[0].value"
    assert set(effective.values) == set(MAPPED_FIELDS)
    assert not any(effective.overridden.values())


@pytest.mark.asyncio
async def test_org_without_override_inherits_app_values(plane):
    await plane.mappings.set_overrides(APP_SCOPE, {"email_field": "emails[work].value"})

    app_level = await plane.mappings.get_effective(APP_SCOPE)
    org_level = await plane.mappings.get_effective(ORG_SCOPE)

    assert app_level.overridden["email_field"] is True
    assert org_level.values == app_level.values
    assert not any(org_level.overridden.values())


@pytest.mark.asyncio
async def test_single_org_override_flips_only_that_field(plane):
    effective = await plane.mappings.set_overrides(ORG_SCOPE, {"department_field": "urn:custom:dept"})

    assert effective.values["department_field"] == "urn:custom:dept"
    assert effective.overridden["department_field"] is True
    assert [name for name, flag in effective.overridden.items() if flag] == ["department_field"]


@pytest.mark.asyncio
async def test_override_equal_to_parent_is_not_overridden(plane):
    effective = await plane.mappings.set_overrides(ORG_SCOPE, {"username_field": "userName"})
    assert effective.values["username_field"] == "userName"
    assert effective.overridden["username_field"] is False


@pytest.mark.asyncio
async def test_upsert_keeps_one_row_and_none_clears(plane):
    await plane.mappings.set_overrides(APP_SCOPE, {"username_field": "externalId"})
    await plane.mappings.set_overrides(APP_SCOPE, {"active_field": "enabled"})
    effective = await plane.mappings.get_effective(APP_SCOPE)
    assert effective.values["username_field"] == "externalId"
    assert effective.values["active_field"] == "enabled"

    effective = await plane.mappings.set_overrides(APP_SCOPE, {"username_field": None})
    assert effective.values["username_field"] == "userName"
    assert effective.overridden["username_field"] is False
    assert effective.overridden["active_field"] is True


@pytest.mark.asyncio
async def test_reset_restores_inheritance(plane):
    await plane.mappings.set_overrides(ORG_SCOPE, {"manager_field": "manager"})
    assert await plane.mappings.reset_overrides(ORG_SCOPE) is True
    assert await plane.mappings.reset_overrides(ORG_SCOPE) is False

    effective = await plane.mappings.get_effective(ORG_SCOPE)
    assert not any(effective.overridden.values())


@pytest.mark.asyncio
async def test_custom_pairs_inherit(plane):
    await plane.mappings.set_overrides(APP_SCOPE, {}, custom={"costCenter": "cost_center"})
    effective = await plane.mappings.set_overrides(ORG_SCOPE, {}, custom={"badge": "badge_id"})

    assert effective.custom == {"costCenter": "cost_center", "badge": "badge_id"}
    assert effective.is_overridden("badge") is True
    assert effective.is_overridden("costCenter") is False


@pytest.mark.asyncio
async def test_scopes_are_isolated(plane):
    await plane.mappings.set_overrides(ORG_SCOPE, {"email_field": "mail"})
    other_org = Scope("app_1", "env_prod", "org_other")
    effective = await plane.mappings.get_effective(other_org)
    assert effective.values["email_field"] == "emails[0].value"


@pytest.mark.asyncio
async def test_rejects_unknown_and_blank_fields(plane):
    with pytest.raises(ValidationError):
        await plane.mappings.set_overrides(APP_SCOPE, {"shoe_size_field": "x"})
    with pytest.raises(ValidationError):
        await plane.mappings.set_overrides(APP_SCOPE, {"email_field": "  "})
