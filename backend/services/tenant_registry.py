"""
Tenant registry.

Tenants are the accounts that receive a share of distribution revenue. One
tenant carries the "operator" role: it runs the platform and never takes part
in distribution, attribution or withdrawals.

An empty store reads as the default seed set (operator "admin" plus two demo
tenants), the same way every other collection falls back to a default value.
Deleting a tenant removes only the tenant record; its distributions and
withdrawals stay in their ledgers as orphans and drop out of aggregation.
"""

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Optional

from models.schemas import Tenant, Role
from services.errors import InvalidTenant, TenantNotFound
from services.store import KeyValueStore, TENANTS_KEY, load_records, save_records

logger = logging.getLogger(__name__)

OPERATOR_ROLE = "operator"
TENANT_ROLE = "tenant"

_SEED_CREATED_AT = datetime.now(timezone.utc)

DEFAULT_TENANTS = [
    Tenant(id="u_admin", display_name="admin", secret="123456",
           role=OPERATOR_ROLE, split_ratio=0, created_at=_SEED_CREATED_AT),
    Tenant(id="u_test1", display_name="test1", secret="123456",
           role=TENANT_ROLE, split_ratio=75, created_at=_SEED_CREATED_AT),
    Tenant(id="u_test2", display_name="test2", secret="123456",
           role=TENANT_ROLE, split_ratio=80, created_at=_SEED_CREATED_AT),
]


def new_tenant_id() -> str:
    return f"u_{uuid.uuid4().hex[:12]}"


def load_tenants(store: KeyValueStore) -> list[Tenant]:
    return load_records(store, TENANTS_KEY, Tenant, default=DEFAULT_TENANTS)


def save_tenants(store: KeyValueStore, tenants: list[Tenant]) -> None:
    save_records(store, TENANTS_KEY, tenants)


def list_tenants(store: KeyValueStore, include_operator: bool = True) -> list[Tenant]:
    tenants = load_tenants(store)
    if include_operator:
        return tenants
    return [t for t in tenants if t.role != OPERATOR_ROLE]


def get_tenant(store: KeyValueStore, tenant_id: str) -> Tenant:
    for tenant in load_tenants(store):
        if tenant.id == tenant_id:
            return tenant
    raise TenantNotFound(tenant_id)


def find_tenant_by_name(tenants: list[Tenant], display_name: str) -> Optional[Tenant]:
    """First tenant whose display_name matches exactly, or None."""
    for tenant in tenants:
        if tenant.display_name == display_name:
            return tenant
    return None


def create_tenant(
    store: KeyValueStore,
    display_name: str,
    secret: str,
    split_ratio: float,
    role: Role = TENANT_ROLE,
) -> Tenant:
    """
    Register a new tenant.

    Raises:
        InvalidTenant: empty display name, ratio outside [0, 100], or a
                       second operator.
    """
    display_name = display_name.strip()
    if not display_name:
        raise InvalidTenant("display_name must not be empty")
    _validate_ratio(split_ratio)

    with store.transaction():
        tenants = load_tenants(store)
        if role == OPERATOR_ROLE and any(t.role == OPERATOR_ROLE for t in tenants):
            raise InvalidTenant("an operator tenant already exists")

        tenant = Tenant(
            id=new_tenant_id(),
            display_name=display_name,
            secret=secret,
            role=role,
            split_ratio=split_ratio,
            created_at=datetime.now(timezone.utc),
        )
        save_tenants(store, tenants + [tenant])

    logger.info(f"Tenant created: '{tenant.display_name}' ({tenant.id}), ratio={split_ratio}%")
    return tenant


def update_split_ratio(store: KeyValueStore, tenant_id: str, split_ratio: float) -> Tenant:
    """
    Change a tenant's split ratio. Like the rate config, the new ratio applies
    to all of the tenant's historical revenue.
    """
    _validate_ratio(split_ratio)

    with store.transaction():
        tenants = load_tenants(store)
        for i, tenant in enumerate(tenants):
            if tenant.id == tenant_id:
                break
        else:
            raise TenantNotFound(tenant_id)

        if tenant.role == OPERATOR_ROLE:
            raise InvalidTenant("the operator has no split ratio")

        updated = tenant.model_copy(update={"split_ratio": split_ratio})
        tenants[i] = updated
        save_tenants(store, tenants)

    logger.info(f"Split ratio for '{updated.display_name}' changed: {tenant.split_ratio}% → {split_ratio}%")
    return updated


def delete_tenant(store: KeyValueStore, tenant_id: str) -> Tenant:
    with store.transaction():
        tenants = load_tenants(store)
        target = next((t for t in tenants if t.id == tenant_id), None)
        if target is None:
            raise TenantNotFound(tenant_id)
        if target.role == OPERATOR_ROLE:
            raise InvalidTenant("the operator tenant cannot be deleted")

        save_tenants(store, [t for t in tenants if t.id != tenant_id])

    logger.info(f"Tenant deleted: '{target.display_name}' ({tenant_id})")
    return target


def _validate_ratio(split_ratio: float) -> None:
    if not math.isfinite(split_ratio) or not 0 <= split_ratio <= 100:
        raise InvalidTenant(f"split_ratio must be within [0, 100], got {split_ratio}")
