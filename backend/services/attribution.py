"""
Revenue attribution engine.

Pure functions over a LedgerSnapshot. Nothing here writes to the store and no
revenue figure is ever persisted: every call recomputes from current view
counts, the current RateConfig and the current split ratios.

Formulas:
  gross_revenue(T)     = (Σ view_count over T's successful distributions / 1000) × price_per_thousand_views
  net_revenue(T)       = gross_revenue(T) × T.split_ratio / 100
  withdrawn(T)         = Σ amount over T's withdrawals
  available_balance(T) = max(0, net_revenue(T) − withdrawn(T))

Aggregation excludes:
  - distributions with outcome "failed"
  - the operator tenant
  - orphaned distributions/withdrawals whose tenant was deleted

No rounding is applied here. Callers round only when formatting output.
"""

import logging
from dataclasses import dataclass

from models.schemas import (
    DistributionEvent,
    DistributionRevenue,
    PlatformOverview,
    RateConfig,
    Tenant,
    TenantRevenue,
    Withdrawal,
    ContentItem,
)
from services.distribution_ledger import load_content, load_distributions
from services.rate_config import get_rate_config
from services.store import KeyValueStore, WITHDRAWALS_KEY, load_records
from services.tenant_registry import OPERATOR_ROLE, load_tenants

logger = logging.getLogger(__name__)

VIEWS_PER_PRICE_UNIT = 1_000


@dataclass(frozen=True)
class LedgerSnapshot:
    """Immutable view of the registries and ledgers at one instant."""

    tenants: tuple[Tenant, ...]
    distributions: tuple[DistributionEvent, ...]
    withdrawals: tuple[Withdrawal, ...]
    rate: RateConfig
    content: tuple[ContentItem, ...] = ()


def take_snapshot(store: KeyValueStore) -> LedgerSnapshot:
    """Read every collection under one store lock so the figures agree."""
    with store.transaction():
        return LedgerSnapshot(
            tenants=tuple(load_tenants(store)),
            distributions=tuple(load_distributions(store)),
            withdrawals=tuple(load_records(store, WITHDRAWALS_KEY, Withdrawal)),
            rate=get_rate_config(store),
            content=tuple(load_content(store)),
        )


# ===========================================================================
# Per-distribution revenue
# ===========================================================================

def distribution_gross(view_count: int, rate: RateConfig) -> float:
    return (view_count / VIEWS_PER_PRICE_UNIT) * rate.price_per_thousand_views


def distribution_revenue(
    distribution: DistributionEvent,
    tenant: Tenant,
    rate: RateConfig,
    content_title: str | None = None,
) -> DistributionRevenue:
    """Gross and net for a single distribution. Failed ones earn nothing."""
    if distribution.outcome != "success":
        gross = 0.0
    else:
        gross = distribution_gross(distribution.view_count, rate)

    return DistributionRevenue(
        distribution=distribution,
        content_title=content_title,
        gross_revenue=gross,
        net_revenue=gross * tenant.split_ratio / 100,
    )


# ===========================================================================
# Per-tenant aggregates
# ===========================================================================

def _eligible_distributions(snapshot: LedgerSnapshot, tenant_id: str) -> list[DistributionEvent]:
    return [
        d for d in snapshot.distributions
        if d.tenant_id == tenant_id and d.outcome == "success"
    ]


def _find_tenant(snapshot: LedgerSnapshot, tenant_id: str) -> Tenant | None:
    return next((t for t in snapshot.tenants if t.id == tenant_id), None)


def total_views(snapshot: LedgerSnapshot, tenant_id: str) -> int:
    return sum(d.view_count for d in _eligible_distributions(snapshot, tenant_id))


def gross_revenue(snapshot: LedgerSnapshot, tenant_id: str) -> float:
    """
    Gross revenue for a tenant. Unknown, deleted and operator tenants earn 0;
    a tenant with no distributions earns 0.
    """
    tenant = _find_tenant(snapshot, tenant_id)
    if tenant is None or tenant.role == OPERATOR_ROLE:
        return 0.0
    return distribution_gross(total_views(snapshot, tenant_id), snapshot.rate)


def net_revenue(snapshot: LedgerSnapshot, tenant_id: str) -> float:
    tenant = _find_tenant(snapshot, tenant_id)
    if tenant is None or tenant.role == OPERATOR_ROLE:
        return 0.0
    return gross_revenue(snapshot, tenant_id) * tenant.split_ratio / 100


def withdrawn(snapshot: LedgerSnapshot, tenant_id: str) -> float:
    return sum(w.amount for w in snapshot.withdrawals if w.tenant_id == tenant_id)


def available_balance(snapshot: LedgerSnapshot, tenant_id: str) -> float:
    return max(0.0, net_revenue(snapshot, tenant_id) - withdrawn(snapshot, tenant_id))


def tenant_revenue(snapshot: LedgerSnapshot, tenant: Tenant) -> TenantRevenue:
    views = total_views(snapshot, tenant.id)
    gross = distribution_gross(views, snapshot.rate)
    net = gross * tenant.split_ratio / 100
    paid = withdrawn(snapshot, tenant.id)

    return TenantRevenue(
        tenant_id=tenant.id,
        display_name=tenant.display_name,
        split_ratio=tenant.split_ratio,
        total_views=views,
        gross_revenue=gross,
        net_revenue=net,
        withdrawn=paid,
        available_balance=max(0.0, net - paid),
    )


def revenue_by_tenant(snapshot: LedgerSnapshot) -> list[TenantRevenue]:
    """One TenantRevenue per non-operator tenant, in registry order."""
    results = [
        tenant_revenue(snapshot, t)
        for t in snapshot.tenants
        if t.role != OPERATOR_ROLE
    ]
    logger.debug(
        f"Attributed revenue for {len(results)} tenants at "
        f"price_per_1k={snapshot.rate.price_per_thousand_views}"
    )
    return results


def distributions_for_tenant(snapshot: LedgerSnapshot, tenant: Tenant) -> list[DistributionRevenue]:
    """Every distribution of a tenant (failed ones included, at zero revenue)."""
    titles = {c.id: c.title for c in snapshot.content}
    return [
        distribution_revenue(d, tenant, snapshot.rate, titles.get(d.content_id))
        for d in snapshot.distributions
        if d.tenant_id == tenant.id
    ]


# ===========================================================================
# Platform-wide overview
# ===========================================================================

def platform_overview(snapshot: LedgerSnapshot) -> PlatformOverview:
    """
    Totals across all active (non-operator, not deleted) tenants.

    pending_payout is the sum of withdrawals still awaiting completion.
    """
    active_ids = {t.id for t in snapshot.tenants if t.role != OPERATOR_ROLE}

    views = sum(
        d.view_count for d in snapshot.distributions
        if d.tenant_id in active_ids and d.outcome == "success"
    )
    pending = sum(
        w.amount for w in snapshot.withdrawals
        if w.tenant_id in active_ids and w.status == "pending"
    )

    return PlatformOverview(
        total_views=views,
        total_gross_revenue=distribution_gross(views, snapshot.rate),
        active_tenants=len(active_ids),
        pending_payout=pending,
    )


# ===========================================================================
# Standalone check, run with: cd backend && python -m services.attribution
# ===========================================================================

if __name__ == "__main__":
    from datetime import datetime, timezone

    logging.basicConfig(level=logging.DEBUG, format="%(levelname)s: %(message)s")

    now = datetime.now(timezone.utc)
    tenant = Tenant(id="u_demo", display_name="demo", secret="x", split_ratio=75, created_at=now)
    rate = RateConfig(price_per_thousand_views=0.03)

    for views, expected_gross, expected_net in [(2_000, 0.06, 0.045), (1_000_000, 30.0, 22.5)]:
        dist = DistributionEvent(id="d_demo", content_id="s_demo", tenant_id="u_demo",
                                 created_at=now, view_count=views)
        snapshot = LedgerSnapshot(tenants=(tenant,), distributions=(dist,), withdrawals=(), rate=rate)
        gross = gross_revenue(snapshot, "u_demo")
        net = net_revenue(snapshot, "u_demo")
        ok = abs(gross - expected_gross) < 1e-9 and abs(net - expected_net) < 1e-9
        print(f"  {'PASS' if ok else 'FAIL'}: {views:>10,} views → gross={gross:.4f} net={net:.4f}")
