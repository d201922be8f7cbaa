import logging
from dataclasses import dataclass
from typing import Optional, Union
from app.models.settlements import Settlement
from app.schemas.auth_schema import Principal, UserRole
from app.services.errors import Forbidden, NotOnboarded, Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GlobalScope:
    """Unrestricted visibility (administrators)"""


@dataclass(frozen=True)
class TenantScope:
    """Visibility limited to one wholesaler's settlements"""
    wholesaler_id: str


Scope = Union[GlobalScope, TenantScope]


@dataclass(frozen=True)
class SystemCapability:
    """Cross-tenant write privilege.

    Only the settlement creation pipeline holds an instance; it runs outside
    any wholesaler's request context.
    """
    holder: str


def resolve_scope(principal: Optional[Principal]) -> Scope:
    """Resolve the tenant scope of the calling principal"""
    if principal is None or not principal.principal_id:
        raise Unauthenticated()

    if principal.role == UserRole.admin.value:
        return GlobalScope()

    if principal.role == UserRole.wholesaler.value:
        if not principal.linked_wholesaler_id:
            logger.warning(f"Wholesaler principal {principal.principal_id} has no linked wholesaler")
            raise NotOnboarded()
        return TenantScope(wholesaler_id=principal.linked_wholesaler_id)

    logger.warning(f"Principal {principal.principal_id} with role '{principal.role}' denied settlement access")
    raise Forbidden()


def apply_scope(query, scope: Scope):
    """Restrict a Settlement query (or UPDATE statement) to ``scope``"""
    if isinstance(scope, GlobalScope):
        return query
    if isinstance(scope, TenantScope):
        return query.filter(Settlement.wholesaler_id == scope.wholesaler_id)
    raise TypeError(f"Unknown scope: {scope!r}")


def require_system_capability(capability) -> None:
    if not isinstance(capability, SystemCapability):
        raise Forbidden()
