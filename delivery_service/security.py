"""
Authenticated principal consumed from the upstream identity gateway
"""
import enum
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from fastapi import Header

from delivery_service.exceptions import Forbidden, Unauthenticated


class Role(str, enum.Enum):
    MERCHANT_OWNER = "merchant_owner"
    COURIER = "courier"
    CUSTOMER = "customer"
    SUPER_ADMIN = "super_admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class Principal:
    id: str
    roles: FrozenSet[Role] = field(default_factory=frozenset)
    merchant_id: Optional[str] = None
    courier_id: Optional[str] = None
    
    def has(self, role: Role) -> bool:
        return role in self.roles
    
    @property
    def is_super_admin(self) -> bool:
        return self.has(Role.SUPER_ADMIN)
    
    @property
    def is_system(self) -> bool:
        return self.has(Role.SYSTEM)
    
    def owns_merchant(self, merchant_id: str) -> bool:
        return self.has(Role.MERCHANT_OWNER) and self.merchant_id == merchant_id
    
    def can_manage(self, merchant_id: str) -> bool:
        """Merchant owner of this merchant, or a super-admin"""
        return self.is_super_admin or self.owns_merchant(merchant_id)
    
    def is_courier(self, courier_id: str) -> bool:
        return self.has(Role.COURIER) and self.courier_id == courier_id


SYSTEM_PRINCIPAL = Principal(id="system", roles=frozenset({Role.SYSTEM}))


def require_merchant_access(principal: Principal, merchant_id: str) -> None:
    if not principal.can_manage(merchant_id):
        raise Forbidden(f"Principal {principal.id} cannot act for merchant {merchant_id}")


def require_courier_access(principal: Principal, courier_id: str) -> None:
    if not (principal.is_super_admin or principal.is_courier(courier_id)):
        raise Forbidden(f"Principal {principal.id} cannot act as courier {courier_id}")


# system is internal only and never accepted from the wire
_WIRE_ROLES = {role.value for role in Role if role != Role.SYSTEM}


def _parse_roles(raw: Optional[str]) -> FrozenSet[Role]:
    names = {name.strip() for name in (raw or "").split(",")}
    return frozenset(Role(name) for name in names if name in _WIRE_ROLES)


def get_optional_principal(
    x_principal_id: Optional[str] = Header(None),
    x_principal_roles: Optional[str] = Header(None),
    x_merchant_id: Optional[str] = Header(None),
    x_courier_id: Optional[str] = Header(None),
) -> Optional[Principal]:
    """FastAPI dependency: principal from gateway headers, or None for guests"""
    if not x_principal_id:
        return None
    return Principal(
        id=x_principal_id,
        roles=_parse_roles(x_principal_roles),
        merchant_id=x_merchant_id,
        courier_id=x_courier_id,
    )


def get_principal(
    x_principal_id: Optional[str] = Header(None),
    x_principal_roles: Optional[str] = Header(None),
    x_merchant_id: Optional[str] = Header(None),
    x_courier_id: Optional[str] = Header(None),
) -> Principal:
    """FastAPI dependency: principal required"""
    principal = get_optional_principal(x_principal_id, x_principal_roles, x_merchant_id, x_courier_id)
    if principal is None:
        raise Unauthenticated("Missing X-Principal-Id")
    return principal
