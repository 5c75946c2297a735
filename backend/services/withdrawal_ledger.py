"""
Withdrawal ledger.

Append-only record of withdrawal requests. A request always withdraws the
tenant's ENTIRE available balance at the instant of the call; there is no
partial-amount path.

No double-spend:
  The balance check and the append happen inside one store transaction, and
  the appended amount equals the balance just computed. A second request
  right after therefore sees available_balance == 0 (floored) and fails with
  InsufficientBalance, unless views grew in between.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterator, Optional

import config
from models.schemas import Withdrawal
from services import attribution
from services.errors import InsufficientBalance, UnknownReference
from services.store import KeyValueStore, WITHDRAWALS_KEY, load_records, save_records
from services.tenant_registry import OPERATOR_ROLE, get_tenant

logger = logging.getLogger(__name__)


def load_withdrawals(store: KeyValueStore) -> list[Withdrawal]:
    return load_records(store, WITHDRAWALS_KEY, Withdrawal)


def available_balance(store: KeyValueStore, tenant_id: str) -> float:
    get_tenant(store, tenant_id)
    return attribution.available_balance(attribution.take_snapshot(store), tenant_id)


def request_withdrawal(
    store: KeyValueStore,
    tenant_id: str,
    minimum: Optional[float] = None,
) -> Withdrawal:
    """
    Withdraw the tenant's whole available balance.

    Args:
        tenant_id: Requesting tenant
        minimum:   Smallest balance that may be withdrawn (defaults to
                   config.MIN_WITHDRAWAL_AMOUNT)

    Returns:
        The new pending Withdrawal

    Raises:
        TenantNotFound:      tenant_id does not exist
        UnknownReference:    tenant is the operator
        InsufficientBalance: available balance below the minimum (or zero)
    """
    if minimum is None:
        minimum = config.MIN_WITHDRAWAL_AMOUNT

    with store.transaction():
        tenant = get_tenant(store, tenant_id)
        if tenant.role == OPERATOR_ROLE:
            raise UnknownReference("tenant", tenant_id, "operator cannot withdraw")

        snapshot = attribution.take_snapshot(store)
        balance = attribution.available_balance(snapshot, tenant_id)

        if balance <= 0 or balance < minimum:
            logger.warning(
                f"Withdrawal rejected for '{tenant.display_name}': "
                f"balance={balance:.4f} < minimum={minimum:.2f}"
            )
            raise InsufficientBalance(tenant_id, balance, minimum)

        withdrawal = Withdrawal(
            id=f"w_{uuid.uuid4().hex[:12]}",
            tenant_id=tenant_id,
            amount=balance,
            requested_at=datetime.now(timezone.utc),
            status="pending",
        )
        save_records(store, WITHDRAWALS_KEY, list(snapshot.withdrawals) + [withdrawal])

    logger.info(
        f"Withdrawal {withdrawal.id} accepted for '{tenant.display_name}': "
        f"${withdrawal.amount:,.4f} (pending)"
    )
    return withdrawal


def list_withdrawals(store: KeyValueStore, tenant_id: str) -> Iterator[Withdrawal]:
    """Yield a tenant's withdrawals, most recent first."""
    own = [w for w in load_withdrawals(store) if w.tenant_id == tenant_id]
    # Append order breaks ties between identical timestamps
    indexed = sorted(enumerate(own), key=lambda pair: (pair[1].requested_at, pair[0]), reverse=True)
    for _, withdrawal in indexed:
        yield withdrawal


def complete_withdrawal(store: KeyValueStore, withdrawal_id: str) -> Withdrawal:
    """
    Operator-side transition pending → completed. Completing an already
    completed withdrawal returns it unchanged.
    """
    with store.transaction():
        withdrawals = load_withdrawals(store)
        for i, w in enumerate(withdrawals):
            if w.id == withdrawal_id:
                break
        else:
            raise UnknownReference("withdrawal", withdrawal_id)

        if w.status == "completed":
            return w

        updated = w.model_copy(update={"status": "completed"})
        withdrawals[i] = updated
        save_records(store, WITHDRAWALS_KEY, withdrawals)

    logger.info(f"Withdrawal {withdrawal_id} completed (${updated.amount:,.4f})")
    return updated
