"""MarketEngine boundary: result envelope, error mapping, locking and logging."""

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from src.main import MarketEngine
from src.pm_amm.domain.models import Pool
from src.pm_common.datetime_utils import to_millis

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


async def _binary(engine: MarketEngine, **kwargs) -> str:
    defaults = dict(
        question="Will the launch slip?", outcome_type="BINARY", ante=100, creator_id="creator"
    )
    defaults.update(kwargs)
    result = await engine.create_market(**defaults)
    assert result.ok, result.message
    return result.data["id"]


class TestEnvelope:
    async def test_success_shape(self, engine) -> None:
        result = await engine.create_market(
            question="Q?", outcome_type="BINARY", ante=100, creator_id="creator"
        )
        assert result.ok
        assert result.code == 0
        assert result.kind is None
        assert result.request_id.startswith("req_")
        assert result.data["prob"] == pytest.approx(0.5)
        assert result.data["phase"] == "SANDBOX"

    async def test_app_error_mapped(self, engine) -> None:
        result = await engine.place_bet("mkt_missing", 10, "YES", "alice")
        assert not result.ok
        assert result.code == 3001
        assert result.kind == "MarketNotFound"
        assert result.data is None

    async def test_unknown_user_balance(self, engine) -> None:
        result = await engine.get_balance("ghost")
        assert result.code == 2002
        assert result.kind == "UserNotFound"

    async def test_internal_error_is_contained(self) -> None:
        store = MagicMock()
        store.get_market.side_effect = RuntimeError("disk on fire")
        engine = MarketEngine(store=store)
        result = await engine.get_market("mkt_1")
        assert result.code == 9001
        assert result.kind == "Internal"
        assert "disk" not in result.message


class TestValidationMapping:
    @pytest.mark.parametrize("amount", [-1, 0, float("nan"), float("inf")])
    async def test_bad_amount(self, engine, amount) -> None:
        result = await engine.place_bet("mkt_1", amount, "YES", "alice")
        assert result.code == 4001
        assert result.kind == "InvalidAmount"

    async def test_bad_limit_prob(self, engine) -> None:
        result = await engine.place_limit_order("mkt_1", 10, "YES", 1.5, "alice")
        assert result.code == 4002
        assert result.kind == "InvalidProbability"

    async def test_bad_side(self, engine) -> None:
        result = await engine.place_bet("mkt_1", 10, "MAYBE", "alice")
        assert result.code == 3004
        assert result.kind == "InvalidMarket"

    async def test_bad_outcome_type(self, engine) -> None:
        result = await engine.create_market(
            question="Q?", outcome_type="SCALAR", ante=100, creator_id="creator"
        )
        assert result.kind == "InvalidMarket"

    async def test_bad_ante(self, engine) -> None:
        result = await engine.create_market(
            question="Q?", outcome_type="BINARY", ante=-5, creator_id="creator"
        )
        assert result.kind == "InvalidAmount"


class TestOperations:
    async def test_bet_then_positions(self, engine) -> None:
        market_id = await _binary(engine)
        bet = await engine.place_bet(market_id, 100, "YES", "alice")
        assert bet.ok
        assert bet.data["shares"] == pytest.approx(96.1538, rel=1e-5)

        positions = await engine.get_positions("alice")
        assert [p["contract_id"] for p in positions.data["positions"]] == [market_id]

        sellable = await engine.get_sellable_shares("alice", market_id)
        assert sellable.data["yes"] == pytest.approx(bet.data["shares"])
        assert sellable.data["no"] == 0

    async def test_concurrent_bets_serialise(self, engine, store) -> None:
        market_id = await _binary(engine)
        results = await asyncio.gather(
            *(engine.place_bet(market_id, 20, "YES", f"user{i}") for i in range(5))
        )
        assert all(r.ok for r in results)
        probs = sorted(r.data["prob_after"] for r in results)
        assert len(set(probs)) == 5
        assert store.get_market(market_id).volume == pytest.approx(100)

    async def test_phase_follows_clock(self, engine, clock) -> None:
        market_id = await _binary(engine)
        await engine.place_bet(market_id, 1000, "NO", "alice")

        early = await engine.advance_phase(market_id)
        assert early.data["phase"] == "GRADUATING"

        clock.now += timedelta(seconds=301)
        late = await engine.advance_phase(market_id)
        assert late.data["changed"]
        assert late.data["phase"] == "MAIN"

    async def test_timestamps_follow_clock(self, engine, store, clock) -> None:
        market_id = await _binary(engine)
        clock.now += timedelta(hours=1)
        await engine.place_bet(market_id, 100, "YES", "alice")

        assert store.get_market(market_id).updated_at == clock.now
        assert store.get_user("alice").created_at == clock.now
        assert [e.created_at for e in store.list_ledger("alice")] == [clock.now, clock.now]
        assert store.list_ledger("creator")[0].created_at == T0

    async def test_cancel_unknown_order(self, engine) -> None:
        result = await engine.cancel_order("ord_missing", "alice")
        assert result.kind == "OrderNotFound"

    async def test_ledger(self, engine) -> None:
        await _binary(engine)
        ledger = await engine.get_ledger("creator")
        assert [e["entry_type"] for e in ledger.data] == ["MARKET_ANTE"]

    async def test_operation_is_logged(self, engine, caplog) -> None:
        caplog.set_level(logging.INFO, logger="pm.engine")
        await engine.place_bet("mkt_missing", 10, "YES", "alice")
        assert any("[placeBet] mkt_missing" in r.getMessage() for r in caplog.records)


class TestHistoryReads:
    async def test_full_history_starts_at_creation(self, engine, clock) -> None:
        market_id = await _binary(engine)
        clock.now += timedelta(minutes=1)
        await engine.place_bet(market_id, 100, "YES", "alice")

        history = await engine.get_full_price_history(market_id)
        points = history.data["points"]
        assert points[0]["timestamp"] == to_millis(T0)
        assert points[0]["probability"] == pytest.approx(0.5)
        assert points[-1]["probability"] > 0.5

    async def test_price_at_time(self, engine, clock) -> None:
        market_id = await _binary(engine)
        clock.now += timedelta(minutes=1)
        bet = await engine.place_bet(market_id, 100, "YES", "alice")

        before = await engine.get_price_at_time(market_id, to_millis(T0) - 1)
        assert before.data["probability"] is None
        at_open = await engine.get_price_at_time(market_id, to_millis(T0) + 1)
        assert at_open.data["probability"] == pytest.approx(0.5)
        latest = await engine.get_price_at_time(market_id, to_millis(clock.now))
        assert latest.data["probability"] == pytest.approx(bet.data["prob_after"])

    async def test_bet_history_lists_buys_only(self, engine) -> None:
        market_id = await _binary(engine)
        await engine.place_bet(market_id, 100, "YES", "alice")
        await engine.sell_shares(market_id, "YES", "alice")

        result = await engine.get_bet_history(market_id)
        assert [(p["outcome"], p["amount"]) for p in result.data] == [("YES", 100)]

    async def test_unknown_answer(self, engine) -> None:
        market_id = await _binary(engine)
        result = await engine.get_price_at_time(market_id, 0, answer_id="ans_x")
        assert result.kind == "AnswerNotFound"


class TestVerifyInvariants:
    async def test_clean_store(self, engine) -> None:
        market_id = await _binary(engine)
        await engine.place_bet(market_id, 100, "YES", "alice")
        result = await engine.verify_invariants()
        assert result.ok
        assert result.data == {"ok": True, "violations": []}

    async def test_reports_negative_balance(self, engine, store) -> None:
        market_id = await _binary(engine)
        await engine.place_bet(market_id, 100, "YES", "alice")
        store.get_user("alice").balance = -5.0

        result = await engine.verify_invariants()
        assert result.data["ok"] is False
        assert any("alice" in v for v in result.data["violations"])

    async def test_reports_drained_pool(self, engine, store) -> None:
        market_id = await _binary(engine)
        store.get_market(market_id).outcome.pool = Pool(0.001, 5000)

        result = await engine.verify_invariants()
        assert result.data["ok"] is False
        assert result.data["violations"][0].startswith(f"{market_id}: INV-2")
