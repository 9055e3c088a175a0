"""Unit tests for AccountApplicationService and record_position."""

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from src.pm_account.application.service import AccountApplicationService, record_position
from src.pm_account.domain.models import User
from src.pm_common.enums import LedgerEntryType, Outcome
from src.pm_common.errors import UserNotFoundError
from src.pm_market.infrastructure.persistence import InMemoryStore
from src.pm_order.domain.models import Bet

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _make_bet(**kwargs) -> Bet:
    defaults = dict(
        id="bet_1",
        user_id="alice",
        contract_id="mkt_1",
        outcome=Outcome.YES,
        amount=10.0,
        shares=18.0,
        prob_before=0.5,
        prob_after=0.52,
        created_at=NOW,
    )
    defaults.update(kwargs)
    return Bet(**defaults)


class TestRecordPosition:
    def test_accumulates(self) -> None:
        store = InMemoryStore()
        record_position(store, _make_bet())
        metric = record_position(store, _make_bet(id="bet_2", outcome=Outcome.NO, shares=5.0))
        assert metric.total_shares_yes == pytest.approx(18)
        assert metric.total_shares_no == pytest.approx(5)
        assert metric.invested == pytest.approx(20)
        assert metric.last_bet_at == NOW

    def test_sale_reduces(self) -> None:
        store = InMemoryStore()
        record_position(store, _make_bet())
        metric = record_position(store, _make_bet(id="bet_2", amount=-9.0, shares=-18.0))
        assert metric.total_shares_yes == pytest.approx(0)
        assert metric.invested == pytest.approx(1)

    def test_answers_kept_apart(self) -> None:
        store = InMemoryStore()
        record_position(store, _make_bet(answer_id="ans_a"))
        record_position(store, _make_bet(id="bet_2", answer_id="ans_b"))
        assert len(store.list_user_metrics("alice")) == 2


class TestGetBalance:
    def test_returns_balance_response(self) -> None:
        store = MagicMock()
        store.get_user.return_value = User(id="alice", balance=1234.5, current_betting_streak=2)
        svc = AccountApplicationService(store)

        resp = svc.get_balance("alice")

        assert resp.balance == 1234.5
        assert resp.balance_display == "$1,234.50"
        assert resp.current_betting_streak == 2
        store.get_user.assert_called_once_with("alice")

    def test_unknown_user(self) -> None:
        store = MagicMock()
        store.get_user.return_value = None
        with pytest.raises(UserNotFoundError):
            AccountApplicationService(store).get_balance("ghost")


class TestPositions:
    def test_filters_by_contract_and_empty(self) -> None:
        store = InMemoryStore()
        record_position(store, _make_bet())
        record_position(store, _make_bet(id="bet_2", contract_id="mkt_2"))
        record_position(store, _make_bet(id="bet_3", contract_id="mkt_3", shares=0.0))
        svc = AccountApplicationService(store)

        assert len(svc.get_positions("alice").positions) == 2
        only = svc.get_positions("alice", "mkt_2").positions
        assert [p.contract_id for p in only] == ["mkt_2"]

    def test_sellable_shares_hides_dust(self) -> None:
        store = InMemoryStore()
        record_position(store, _make_bet())
        record_position(store, _make_bet(id="bet_2", outcome=Outcome.NO, shares=1e-12))
        resp = AccountApplicationService(store).get_sellable_shares("alice", "mkt_1")
        assert resp.yes == pytest.approx(18)
        assert resp.no == 0.0


class TestLedger:
    def test_lists_entries_in_order(self) -> None:
        store = InMemoryStore(starting_balance=100.0)
        store.update_balance("alice", -10.0, LedgerEntryType.BET_COST, "bet_1")
        store.update_balance("alice", 3.0, LedgerEntryType.STREAK_BONUS, "bet_1")
        entries = AccountApplicationService(store).list_ledger("alice")
        assert [e.entry_type for e in entries] == ["BET_COST", "STREAK_BONUS"]
        assert entries[-1].balance_after == pytest.approx(93)
