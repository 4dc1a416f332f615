"""SQLAlchemy ORM models."""

from scimgate.models.attribute_mapping import AttributeMapping
from scimgate.models.base import Base
from scimgate.models.group_mapping import GroupMapping
from scimgate.models.provisioning_log import ProvisioningLog
from scimgate.models.team import AppTeam, AppTeamMember, OrganizationTeam, OrganizationTeamMember
from scimgate.models.token import ProvisioningToken

__all__ = [
    "Base", "AppTeam", "AppTeamMember", "AttributeMapping", "GroupMapping",
    "OrganizationTeam", "OrganizationTeamMember", "ProvisioningLog", "ProvisioningToken",
]
