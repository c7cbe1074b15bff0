"""
Pytest configuration and shared fixtures for Buy-a-Tea tests.

Provides in-memory fakes for the wallet provider and the BuyMeATea contract,
a SyncController wired to them, and an HTTP client over the ASGI app.
"""
import asyncio
from typing import Callable

import pytest
import pytest_asyncio
from web3 import Web3

from models import MemoRecord
from exceptions import RemoteCallError
from services.event_listener import MemoSubscription
from services.listener_metrics import SubscriptionMetrics
from services.record_store import RecordStore
from services.sync_controller import SyncController
from services.wallet_service import ConnectionGate, WalletProvider

OWNER = Web3.to_checksum_address("0x" + "aa" * 20)
FAN = Web3.to_checksum_address("0x" + "bb" * 20)
TIP_WEI = 10 ** 15  # 0.001 ETH


# ── Fake wallet provider ─────────────────────────────────────────────


class FakeSigner:
    def __init__(self, address: str):
        self.address = address


class FakeProvider(WalletProvider):
    """Provider returning a mutable account list; counts prompts."""

    def __init__(self, accounts: list[str]):
        super().__init__()
        self.accounts = list(accounts)
        self.requests = 0

    async def _fetch_accounts(self) -> list[str]:
        self.requests += 1
        return list(self.accounts)

    def build_signer(self, account: str) -> FakeSigner:
        return FakeSigner(account)


# ── Fake contract ────────────────────────────────────────────────────


class FakeEventSource:
    def __init__(self):
        self.pending: list[MemoRecord] = []
        self.closed = False
        self.last_block = None

    async def poll(self) -> list[MemoRecord]:
        records, self.pending = self.pending, []
        return records

    async def close(self) -> None:
        self.closed = True


class FakeChain:
    """Remote contract state shared by every session built in a test."""

    def __init__(self, owner: str = OWNER, memos: list[MemoRecord] | None = None):
        self.owner = owner
        self.memos = list(memos or [])
        self.sources: list[FakeEventSource] = []
        self.calls: list[tuple] = []
        self.fail_memos = False
        self.fail_owner = False
        self.fail_tx = False
        self.memos_gate: asyncio.Event | None = None

    @property
    def open_sources(self) -> list[FakeEventSource]:
        return [s for s in self.sources if not s.closed]

    def emit(self, record: MemoRecord) -> None:
        """Deliver a NewMemo log to every installed filter."""
        for source in self.open_sources:
            source.pending.append(record)


class FakeHandle:
    def __init__(self, chain: FakeChain, account: str):
        self.chain = chain
        self.account = account
        self.address = "0xe331Dd38436Ad4876cA4A79FcfB969b77015d94D"

    async def get_owner(self) -> str:
        self.chain.calls.append(("getOwner",))
        if self.chain.fail_owner:
            raise RemoteCallError("getOwner() failed")
        return self.chain.owner

    async def get_memos(self) -> list[MemoRecord]:
        self.chain.calls.append(("getMemos",))
        if self.chain.memos_gate is not None:
            await self.chain.memos_gate.wait()
        if self.chain.fail_memos:
            raise RemoteCallError("getMemos() failed")
        return list(self.chain.memos)

    async def buy_tea(self, name: str, message: str, value_wei: int) -> str:
        self.chain.calls.append(("buyTea", name, message, value_wei, self.account))
        if self.chain.fail_tx:
            raise RemoteCallError("insufficient funds", tx_hash=None)
        return "0x" + "11" * 32

    async def withdraw(self) -> str:
        self.chain.calls.append(("withdraw", self.account))
        if self.chain.fail_tx:
            raise RemoteCallError("withdraw reverted", tx_hash="0x" + "22" * 32)
        return "0x" + "33" * 32

    async def open_new_memo_filter(self) -> FakeEventSource:
        source = FakeEventSource()
        self.chain.sources.append(source)
        return source


class FakeSession:
    def __init__(self, gate: ConnectionGate, chain: FakeChain):
        self._gate = gate
        self._chain = chain
        self.handle = None

    async def initialize(self) -> FakeHandle:
        account = await self._gate.request_account()
        self.handle = FakeHandle(self._chain, account)
        return self.handle

    async def close(self) -> None:
        self.handle = None


def remote_calls(chain: FakeChain, name: str) -> list[tuple]:
    return [c for c in chain.calls if c[0] == name]


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Spin the loop until predicate() holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture
def historical_memo() -> MemoRecord:
    return MemoRecord(sender="0xAA", name="Bob", message="Nice!", timestamp=100)


@pytest.fixture
def chain(historical_memo) -> FakeChain:
    return FakeChain(memos=[historical_memo])


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider([FAN])


@pytest.fixture
def metrics() -> SubscriptionMetrics:
    return SubscriptionMetrics()


@pytest.fixture
def make_controller(chain, metrics) -> Callable[..., SyncController]:
    def _make(provider: WalletProvider | None, dedupe: bool = False) -> SyncController:
        return SyncController(
            ConnectionGate(provider),
            store=RecordStore(dedupe=dedupe),
            session_factory=lambda gate: FakeSession(gate, chain),
            subscription_factory=lambda handle, store: MemoSubscription(
                handle, store, poll_seconds=0.01, metrics=metrics
            ),
            tip_amount_wei=TIP_WEI,
        )
    return _make


@pytest_asyncio.fixture
async def controller(make_controller, provider):
    ctrl = make_controller(provider)
    yield ctrl
    await ctrl.close()


@pytest_asyncio.fixture
async def client(controller):
    """HTTP client over the app with the fake-backed controller installed."""
    from httpx import ASGITransport, AsyncClient
    from main import app

    app.state.controller = controller
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.state.controller = None
