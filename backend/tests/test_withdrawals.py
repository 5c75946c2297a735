"""
Tests for services/withdrawal_ledger.py.

Covers the withdraw-all semantics, the minimum threshold, the no-double-spend
guarantee, history ordering and the operator-side completion transition.
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from services.distribution_ledger import record_views
from services.errors import InsufficientBalance, TenantNotFound, UnknownReference
from services.withdrawal_ledger import (
    available_balance,
    complete_withdrawal,
    list_withdrawals,
    load_withdrawals,
    request_withdrawal,
)


# ===========================================================================
# Request withdrawal
# ===========================================================================

class TestRequestWithdrawal:

    def test_below_minimum_rejected(self, store, make_distribution):
        """2,000 views @ 0.03 × 75% = 0.045 → below the $10 minimum."""
        make_distribution("u_test1", 2_000)

        with pytest.raises(InsufficientBalance) as exc_info:
            request_withdrawal(store, "u_test1")

        assert exc_info.value.available == pytest.approx(0.045)
        assert exc_info.value.minimum == 10
        assert load_withdrawals(store) == []

    def test_withdraws_entire_balance(self, store, make_distribution):
        """1,000,000 views → net 22.5, all of it withdrawn."""
        make_distribution("u_test1", 1_000_000)

        w = request_withdrawal(store, "u_test1")

        assert w.amount == pytest.approx(22.5)
        assert w.status == "pending"
        assert w.tenant_id == "u_test1"
        assert available_balance(store, "u_test1") == 0.0

    def test_second_immediate_request_fails(self, store, make_distribution):
        make_distribution("u_test1", 1_000_000)

        request_withdrawal(store, "u_test1")
        with pytest.raises(InsufficientBalance):
            request_withdrawal(store, "u_test1")

        assert len(load_withdrawals(store)) == 1

    def test_balance_non_negative_after_withdrawal(self, store, make_distribution):
        make_distribution("u_test1", 1_234_567)
        request_withdrawal(store, "u_test1")
        assert available_balance(store, "u_test1") >= 0.0

    def test_new_views_allow_another_withdrawal(self, store, make_distribution):
        dist = make_distribution("u_test1", 1_000_000)
        first = request_withdrawal(store, "u_test1")

        # +1M views → another 22.5 of net revenue
        record_views(store, dist.id, 1_000_000)
        second = request_withdrawal(store, "u_test1")

        assert first.amount == pytest.approx(22.5)
        assert second.amount == pytest.approx(22.5)

    def test_small_growth_still_below_minimum(self, store, make_distribution):
        dist = make_distribution("u_test1", 1_000_000)
        request_withdrawal(store, "u_test1")
        record_views(store, dist.id, 50)

        with pytest.raises(InsufficientBalance):
            request_withdrawal(store, "u_test1")

    def test_custom_minimum(self, store, make_distribution):
        make_distribution("u_test1", 2_000)
        w = request_withdrawal(store, "u_test1", minimum=0.01)
        assert w.amount == pytest.approx(0.045)

    def test_zero_balance_rejected_even_with_zero_minimum(self, store):
        with pytest.raises(InsufficientBalance):
            request_withdrawal(store, "u_test1", minimum=0)

    def test_default_minimum_from_config(self, store, make_distribution):
        make_distribution("u_test1", 1_000_000)
        with patch("services.withdrawal_ledger.config.MIN_WITHDRAWAL_AMOUNT", 50):
            with pytest.raises(InsufficientBalance):
                request_withdrawal(store, "u_test1")

    def test_unknown_tenant(self, store):
        with pytest.raises(TenantNotFound):
            request_withdrawal(store, "u_ghost")

    def test_operator_cannot_withdraw(self, store, make_distribution):
        make_distribution("u_admin", 10_000_000)
        with pytest.raises(UnknownReference):
            request_withdrawal(store, "u_admin")

    def test_other_tenants_unaffected(self, store, make_distribution):
        make_distribution("u_test1", 1_000_000)
        make_distribution("u_test2", 1_000_000)
        request_withdrawal(store, "u_test1")
        assert available_balance(store, "u_test2") == pytest.approx(24.0)


# ===========================================================================
# History + completion
# ===========================================================================

class TestWithdrawalHistory:

    def test_most_recent_first(self, store, make_distribution):
        dist = make_distribution("u_test1", 1_000_000)
        t0 = datetime(2026, 2, 20, 10, 0, 0, tzinfo=timezone.utc)

        ids = []
        for i in range(3):
            with patch("services.withdrawal_ledger.datetime") as mock_dt:
                mock_dt.now.return_value = t0 + timedelta(hours=i)
                ids.append(request_withdrawal(store, "u_test1").id)
            record_views(store, dist.id, 1_000_000)

        history = [w.id for w in list_withdrawals(store, "u_test1")]
        assert history == list(reversed(ids))

    def test_history_is_a_one_shot_iterator(self, store, make_distribution):
        make_distribution("u_test1", 1_000_000)
        request_withdrawal(store, "u_test1")

        history = list_withdrawals(store, "u_test1")
        assert len(list(history)) == 1
        assert list(history) == []

    def test_history_filtered_by_tenant(self, store, make_distribution):
        make_distribution("u_test1", 1_000_000)
        request_withdrawal(store, "u_test1")
        assert list(list_withdrawals(store, "u_test2")) == []

    def test_complete_withdrawal(self, store, make_distribution):
        make_distribution("u_test1", 1_000_000)
        w = request_withdrawal(store, "u_test1")

        done = complete_withdrawal(store, w.id)

        assert done.status == "completed"
        assert load_withdrawals(store)[0].status == "completed"
        # Completing does not free up balance
        assert available_balance(store, "u_test1") == 0.0

    def test_complete_twice_is_noop(self, store, make_distribution):
        make_distribution("u_test1", 1_000_000)
        w = request_withdrawal(store, "u_test1")
        complete_withdrawal(store, w.id)
        assert complete_withdrawal(store, w.id).status == "completed"

    def test_complete_unknown(self, store):
        with pytest.raises(UnknownReference):
            complete_withdrawal(store, "w_ghost")
