"""
Tests for the session/synchronization controller.

Tests: connect lifecycle, historical + live feed ordering, owner gating of
withdraw, tip defaults, subscription teardown on account change.
"""
import asyncio

import pytest

from domain.enums import ActionOutcome, SessionState
from models import MemoRecord
from services.sync_controller import SyncController
from services.wallet_service import ConnectionGate
from tests.conftest import FAN, OWNER, TIP_WEI, FakeProvider, FakeSession, remote_calls, wait_for


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_reaches_ready(self, controller, chain):
        state = await controller.connect()

        assert state == SessionState.READY
        assert controller.account == FAN
        assert controller.owner == OWNER
        assert controller.live_subscribed is True
        assert len(chain.open_sources) == 1

    @pytest.mark.asyncio
    async def test_no_provider_stays_disconnected(self, make_controller, chain):
        ctrl = make_controller(None)

        state = await ctrl.connect()

        assert state == SessionState.DISCONNECTED
        assert ctrl.account is None
        assert ctrl.handle is None
        assert chain.calls == []

    @pytest.mark.asyncio
    async def test_empty_accounts_is_denied(self, make_controller):
        ctrl = make_controller(FakeProvider([]))

        state = await ctrl.connect()

        assert state == SessionState.DISCONNECTED
        assert ctrl.account is None

    @pytest.mark.asyncio
    async def test_connect_twice_same_account_is_noop(self, controller, chain, provider):
        await controller.connect()
        handle = controller.handle

        await controller.connect()

        assert controller.handle is handle
        assert provider.requests == 2
        assert len(chain.open_sources) == 1

    @pytest.mark.asyncio
    async def test_disconnect_clears_session(self, controller, chain):
        await controller.connect()

        await controller.disconnect()

        assert controller.state == SessionState.DISCONNECTED
        assert controller.account is None
        assert controller.owner is None
        assert len(controller.store) == 0
        assert chain.open_sources == []


class TestFeed:

    @pytest.mark.asyncio
    async def test_historical_then_live(self, controller, chain):
        """Historical Bob/Nice! first, then the live Cara/Thanks."""
        await controller.connect()
        chain.emit(MemoRecord(sender="0xBB", timestamp=200, name="Cara", message="Thanks"))

        await wait_for(lambda: len(controller.store) == 2)

        memos = controller.store.snapshot()
        assert [(m.sender, m.name, m.message) for m in memos] == [
            ("0xAA", "Bob", "Nice!"),
            ("0xBB", "Cara", "Thanks"),
        ]

    @pytest.mark.asyncio
    async def test_live_order_preserved(self, controller, chain):
        await controller.connect()
        for i in range(5):
            chain.emit(MemoRecord(sender="0xCC", timestamp=300 + i, name=f"n{i}", message="m"))

        await wait_for(lambda: len(controller.store) == 6)

        assert [m.timestamp for m in controller.store.snapshot()] == [100, 300, 301, 302, 303, 304]

    @pytest.mark.asyncio
    async def test_live_event_before_historical_batch(self, make_controller, provider, chain, historical_memo):
        """With dedupe on, a live memo racing the bulk fetch ends up after the batch, once."""
        controller = make_controller(provider, dedupe=True)
        chain.memos_gate = asyncio.Event()
        connecting = asyncio.create_task(controller.connect())

        await wait_for(lambda: len(chain.open_sources) == 1)
        chain.emit(MemoRecord(sender="0xBB", timestamp=200, name="Cara", message="Thanks"))
        chain.emit(historical_memo)  # replayed by the transport as well
        await wait_for(lambda: len(controller.store) == 2)

        chain.memos_gate.set()
        await connecting

        assert [m.name for m in controller.store.snapshot()] == ["Bob", "Cara"]
        await controller.close()

    @pytest.mark.asyncio
    async def test_identical_tips_all_shown_by_default(self, chain):
        """Two empty-form tips in one block, then a live replay: three records."""
        tip = MemoRecord(sender="0xAA", name="", message="", timestamp=100)
        chain.memos = [tip, tip]
        ctrl = SyncController(
            ConnectionGate(FakeProvider([FAN])),
            session_factory=lambda gate: FakeSession(gate, chain),
        )
        await ctrl.connect()
        ctrl.store.append_one(tip)

        assert len(ctrl.store) == 3
        await ctrl.close()

    @pytest.mark.asyncio
    async def test_memo_failure_does_not_block_owner(self, controller, chain):
        chain.fail_memos = True

        await controller.connect()

        assert controller.state == SessionState.READY
        assert len(controller.store) == 0
        assert controller.owner == OWNER

    @pytest.mark.asyncio
    async def test_owner_failure_does_not_block_memos(self, controller, chain):
        chain.fail_owner = True

        await controller.connect()

        assert controller.owner is None
        assert len(controller.store) == 1


class TestSubmitTip:

    @pytest.mark.asyncio
    async def test_empty_fields_use_defaults(self, controller, chain):
        await controller.connect()

        result = await controller.submit_tip("", "")

        assert result.outcome == ActionOutcome.CONFIRMED
        assert remote_calls(chain, "buyTea") == [
            ("buyTea", "Anonymity", "Enjoy your tea!", TIP_WEI, FAN)
        ]

    @pytest.mark.asyncio
    async def test_form_cleared_after_confirmation(self, controller):
        await controller.connect()

        await controller.submit_tip("Ann", "Cheers")

        assert controller.tip_form is None

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, controller, chain):
        await controller.connect()
        chain.fail_tx = True

        result = await controller.submit_tip("Ann", "Cheers")

        assert result.outcome == ActionOutcome.FAILED
        assert controller.tip_form == {"name": "Ann", "message": "Cheers"}
        assert len(remote_calls(chain, "buyTea")) == 1  # no retry

    @pytest.mark.asyncio
    async def test_not_ready_sends_nothing(self, controller, chain):
        result = await controller.submit_tip("Ann", "Cheers")

        assert result.outcome == ActionOutcome.NOT_READY
        assert remote_calls(chain, "buyTea") == []


class TestWithdraw:

    @pytest.mark.asyncio
    async def test_non_owner_never_calls_remote(self, controller, chain):
        await controller.connect()

        result = await controller.withdraw()

        assert result.outcome == ActionOutcome.DENIED
        assert remote_calls(chain, "withdraw") == []

    @pytest.mark.asyncio
    async def test_owner_withdraws(self, make_controller, chain):
        ctrl = make_controller(FakeProvider([OWNER]))
        await ctrl.connect()

        result = await ctrl.withdraw()

        assert result.outcome == ActionOutcome.CONFIRMED
        assert remote_calls(chain, "withdraw") == [("withdraw", OWNER)]
        await ctrl.close()

    @pytest.mark.asyncio
    async def test_owner_match_is_case_insensitive(self, make_controller, chain):
        chain.owner = OWNER.lower()
        ctrl = make_controller(FakeProvider([OWNER.upper().replace("0X", "0x")]))
        await ctrl.connect()

        result = await ctrl.withdraw()

        assert result.outcome == ActionOutcome.CONFIRMED
        assert len(remote_calls(chain, "withdraw")) == 1
        await ctrl.close()

    @pytest.mark.asyncio
    async def test_unknown_owner_denies(self, controller, chain):
        chain.fail_owner = True
        await controller.connect()

        result = await controller.withdraw()

        assert result.outcome == ActionOutcome.DENIED
        assert remote_calls(chain, "withdraw") == []

    @pytest.mark.asyncio
    async def test_remote_failure_reported(self, make_controller, chain):
        ctrl = make_controller(FakeProvider([OWNER]))
        await ctrl.connect()
        chain.fail_tx = True

        result = await ctrl.withdraw()

        assert result.outcome == ActionOutcome.FAILED
        assert result.tx_hash == "0x" + "22" * 32
        await ctrl.close()


class TestAccountChange:

    @pytest.mark.asyncio
    async def test_rebuild_leaves_one_subscription(self, controller, chain, provider):
        await controller.connect()
        first_handle = controller.handle

        provider.accounts = [OWNER]
        await controller.connect()

        assert controller.account == OWNER
        assert controller.handle is not first_handle
        assert len(chain.sources) == 2
        assert len(chain.open_sources) == 1

    @pytest.mark.asyncio
    async def test_no_duplicate_delivery_after_rebuild(self, make_controller, chain, provider):
        ctrl = make_controller(provider, dedupe=False)
        await ctrl.connect()
        provider.accounts = [OWNER]
        await ctrl.connect()

        chain.emit(MemoRecord(sender="0xBB", timestamp=200, name="Cara", message="Thanks"))
        await wait_for(lambda: len(ctrl.store) >= 2)
        await asyncio.sleep(0.05)

        assert [m.name for m in ctrl.store.snapshot()].count("Cara") == 1
        await ctrl.close()

    @pytest.mark.asyncio
    async def test_provider_notification_rebuilds(self, controller, chain, provider):
        await controller.connect()
        provider.accounts = [OWNER]

        await controller.handle_accounts_changed([OWNER])

        assert controller.state == SessionState.READY
        assert controller.account == OWNER
        assert controller.is_owner is True
        assert len(chain.open_sources) == 1

    @pytest.mark.asyncio
    async def test_notification_with_no_accounts_disconnects(self, controller, chain):
        await controller.connect()

        await controller.handle_accounts_changed([])

        assert controller.state == SessionState.DISCONNECTED
        assert chain.open_sources == []

    @pytest.mark.asyncio
    async def test_status_snapshot(self, controller):
        await controller.connect()

        status = controller.status()

        assert status["state"] == SessionState.READY
        assert status["account"] == FAN
        assert status["is_owner"] is False
        assert status["memo_count"] == 1
        assert status["live_subscribed"] is True
