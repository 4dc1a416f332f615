"""Read-only security policy for the IdP-facing boundary."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field

from scimgate.core.config import SecurityConfig
from scimgate.core.errors import ValidationError

_Network = ipaddress.IPv4Network | ipaddress.IPv6Network


def _parse_networks(entries: list[str] | tuple[str, ...]) -> tuple[_Network, ...]:
    networks = []
    for entry in entries:
        try:
            networks.append(ipaddress.ip_network(entry.strip(), strict=False))
        except ValueError as exc:
            raise ValidationError(f"invalid ip allowlist entry {entry!r}") from exc
    return tuple(networks)


@dataclass(frozen=True)
class SecurityPolicy:
    require_https: bool = True
    audit_all_operations: bool = True
    mask_sensitive_data: bool = True
    ip_allowlist: tuple[str, ...] = ()
    _networks: tuple[_Network, ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_networks", _parse_networks(self.ip_allowlist))

    @classmethod
    def from_config(cls, config: SecurityConfig) -> SecurityPolicy:
        return cls(
            require_https=config.require_https,
            audit_all_operations=config.audit_all_operations,
            mask_sensitive_data=config.mask_sensitive_data,
            ip_allowlist=tuple(config.ip_allowlist),
        )

    def is_secure_transport(self, scheme: str, forwarded_proto: str | None = None) -> bool:
        """True when HTTPS is not required, or the request (or its proxy hop) used it."""
        if not self.require_https:
            return True
        if scheme.lower() == "https":
            return True
        # X-Forwarded-Proto may carry a list; the first entry is the client hop
        if forwarded_proto:
            return forwarded_proto.split(",")[0].strip().lower() == "https"
        return False

    def is_ip_allowed(self, ip: str | None) -> bool:
        """Empty allowlist allows everyone; otherwise unparseable addresses are refused."""
        if not self._networks:
            return True
        if not ip:
            return False
        try:
            address = ipaddress.ip_address(ip.strip())
        except ValueError:
            return False
        return any(address in network for network in self._networks)
