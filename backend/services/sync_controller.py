"""
Sync controller — wallet session state machine and memo feed synchronization.

States:
    DISCONNECTED → CONNECTING → READY

On entering READY three things are issued together:
    1. getMemos()  → RecordStore.append_batch   (best-effort)
    2. getOwner()  → owner                      (best-effort)
    3. NewMemo subscription → RecordStore.append_one per event

An account change (or disconnect) stops the live subscription before the
ContractSession is rebuilt, so exactly one subscription exists at any time.

User actions (submit_tip, withdraw) only run in READY. Remote failures are
logged and reported as an ActionOutcome; they are never raised to callers.
The owner check in withdraw() is a local courtesy; the contract enforces
the real rule.
"""
import asyncio
import logging
from typing import Callable, Optional

from config import settings
from domain.constants import DEFAULT_MESSAGE, DEFAULT_NAME
from domain.enums import ActionOutcome, SessionState
from exceptions import AuthorizationCheckFailed, AuthorizationDeniedError, NoProviderError
from models import ActionResult
from services.contract_service import ContractSession
from services.event_listener import MemoSubscription
from services.record_store import RecordStore
from services.wallet_service import ConnectionGate
from utils.validators import eth_to_wei, same_address

logger = logging.getLogger(__name__)

SessionFactory = Callable[[ConnectionGate], ContractSession]


def _default_subscription(handle, store: RecordStore) -> MemoSubscription:
    return MemoSubscription(handle, store)


class SyncController:
    """Owns the session, the memo feed and the two user actions."""

    def __init__(
        self,
        gate: ConnectionGate,
        store: RecordStore | None = None,
        session_factory: SessionFactory | None = None,
        subscription_factory: Callable | None = None,
        tip_amount_wei: int | None = None,
    ):
        self._gate = gate
        self.store = store if store is not None else RecordStore(dedupe=settings.dedupe_memos)
        self._session_factory = session_factory or ContractSession
        self._subscription_factory = subscription_factory or _default_subscription
        self._tip_amount_wei = (
            tip_amount_wei if tip_amount_wei is not None else eth_to_wei(settings.tip_amount_eth)
        )

        self.state = SessionState.DISCONNECTED
        self.owner: Optional[str] = None
        self.historical_loading = False
        # Form-equivalent state: set while a tip is in flight, cleared once it is mined
        self.tip_form: Optional[dict] = None

        self._session: Optional[ContractSession] = None
        self._handle = None
        self._subscription: Optional[MemoSubscription] = None
        self._lock = asyncio.Lock()
        self._remove_listener: Optional[Callable[[], None]] = None
        self._change_tasks: set[asyncio.Task] = set()

    # ── Read-only view ──────────────────────────────────────────────

    @property
    def account(self) -> Optional[str]:
        return self._gate.account

    @property
    def handle(self):
        return self._handle

    @property
    def subscription(self) -> Optional[MemoSubscription]:
        return self._subscription

    @property
    def live_subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def is_owner(self) -> bool:
        return same_address(self.account, self.owner)

    def status(self) -> dict:
        return {
            "state": self.state,
            "account": self.account,
            "owner": self.owner,
            "is_owner": self.is_owner,
            "contract_address": self._handle.address if self._handle else settings.contract_address,
            "historical_loading": self.historical_loading,
            "live_subscribed": self.live_subscribed,
            "memo_count": len(self.store),
        }

    # ── Session lifecycle ───────────────────────────────────────────

    async def connect(self) -> SessionState:
        """
        User "connect" action.

        When already READY the provider is asked again; a different account
        rebuilds the session, the same account is a no-op.
        """
        async with self._lock:
            if self.state == SessionState.READY:
                previous = self.account
                try:
                    account = await self._gate.request_account()
                except Exception as e:
                    logger.warning(f"Account re-check failed: {e}")
                    return self.state
                if same_address(account, previous):
                    return self.state
                logger.info(f"Account switched {previous} -> {account}, rebuilding session")
                await self._teardown()
            return await self._establish()

    async def disconnect(self) -> None:
        async with self._lock:
            await self._teardown()
            self._gate.clear()

    async def handle_accounts_changed(self, accounts: list[str]) -> None:
        """Rebuild the session for the provider's new primary account."""
        async with self._lock:
            if self.state != SessionState.READY:
                return
            new_account = accounts[0] if accounts else None
            if same_address(new_account, self.account):
                return
            logger.info(f"Wallet account changed to {new_account}")
            await self._teardown()
            self._gate.clear()
            if new_account:
                await self._establish()

    async def close(self) -> None:
        """Tear down at process shutdown."""
        if self._remove_listener:
            self._remove_listener()
            self._remove_listener = None
        for task in list(self._change_tasks):
            task.cancel()
        await self.disconnect()

    async def _establish(self) -> SessionState:
        self.state = SessionState.CONNECTING
        session = self._session_factory(self._gate)
        try:
            handle = await session.initialize()
        except NoProviderError as e:
            logger.warning(f"Please install a wallet provider ({e})")
            return self._abort_connect()
        except AuthorizationDeniedError as e:
            logger.warning(f"Wallet authorization denied: {e}")
            return self._abort_connect()
        except Exception as e:
            logger.error(f"Contract session initialization failed: {e}")
            return self._abort_connect()

        self._session = session
        self._handle = handle
        self.state = SessionState.READY
        self._watch_accounts()

        await asyncio.gather(
            self._load_memos(handle),
            self._load_owner(handle),
            self._subscribe(handle),
        )
        return self.state

    def _abort_connect(self) -> SessionState:
        self._gate.clear()
        self.state = SessionState.DISCONNECTED
        return self.state

    async def _teardown(self) -> None:
        # Subscription goes first so no event is delivered through a stale handle
        if self._subscription is not None:
            await self._subscription.stop()
            self._subscription = None
        if self._session is not None:
            await self._session.close()
            self._session = None
        self._handle = None
        self.owner = None
        self.historical_loading = False
        self.tip_form = None
        self.store.clear()
        self.state = SessionState.DISCONNECTED

    def _watch_accounts(self) -> None:
        provider = self._gate.provider
        if self._remove_listener is not None or provider is None:
            return

        def _on_change(accounts: list[str]) -> None:
            task = asyncio.get_running_loop().create_task(self.handle_accounts_changed(accounts))
            self._change_tasks.add(task)
            task.add_done_callback(self._change_tasks.discard)

        self._remove_listener = provider.on_accounts_changed(_on_change)

    async def _load_memos(self, handle) -> None:
        self.historical_loading = True
        try:
            logger.info("Fetching memos from the blockchain..")
            memos = await handle.get_memos()
        except Exception as e:
            logger.error(f"Fetching memos failed: {e}")
            return
        finally:
            self.historical_loading = False

        if handle is not self._handle:
            return
        total = self.store.append_batch(memos)
        logger.info(f"Fetched memos! ({len(memos)} historical, {total} in feed)")

    async def _load_owner(self, handle) -> None:
        try:
            logger.info("Fetching owner from the blockchain..")
            owner = await handle.get_owner()
        except Exception as e:
            logger.error(f"Fetching owner failed: {e}")
            return
        if handle is self._handle:
            self.owner = owner
            logger.info(f"Fetched owner! ({owner})")

    async def _subscribe(self, handle) -> None:
        subscription = self._subscription_factory(handle, self.store)
        try:
            await subscription.start()
        except Exception as e:
            logger.error(f"NewMemo subscription failed: {e}")
            return
        self._subscription = subscription

    # ── User actions ────────────────────────────────────────────────

    async def submit_tip(self, name: str = "", message: str = "") -> ActionResult:
        """Send buyTea with the fixed tip amount and wait for it to be mined."""
        handle = self._handle
        if self.state != SessionState.READY or handle is None:
            return ActionResult(outcome=ActionOutcome.NOT_READY, detail="Wallet not connected")

        name = name or DEFAULT_NAME
        message = message or DEFAULT_MESSAGE
        self.tip_form = {"name": name, "message": message}

        logger.info("Buying tea...")
        try:
            tx_hash = await handle.buy_tea(name, message, self._tip_amount_wei)
        except Exception as e:
            logger.error(f"Buying tea failed: {e}")
            return ActionResult(
                outcome=ActionOutcome.FAILED,
                tx_hash=getattr(e, "tx_hash", None),
                detail="Tip transaction failed",
            )

        logger.info(f"Tea purchased! ({tx_hash})")
        self.tip_form = None
        return ActionResult(outcome=ActionOutcome.CONFIRMED, tx_hash=tx_hash)

    def check_owner(self) -> None:
        """Raise AuthorizationCheckFailed unless the connected account is the owner."""
        if not self.is_owner:
            raise AuthorizationCheckFailed(
                f"Account {self.account} is not the contract owner {self.owner}"
            )

    async def withdraw(self) -> ActionResult:
        """Withdraw the contract balance; refused locally for non-owners."""
        handle = self._handle
        if self.state != SessionState.READY or handle is None:
            return ActionResult(outcome=ActionOutcome.NOT_READY, detail="Wallet not connected")

        try:
            self.check_owner()
        except AuthorizationCheckFailed as e:
            logger.info(f"Can't withdraw by non-owner! {e}")
            return ActionResult(outcome=ActionOutcome.DENIED, detail="Only the owner can withdraw")

        logger.info("Withdrawing...")
        try:
            tx_hash = await handle.withdraw()
        except Exception as e:
            logger.error(f"Withdraw failed: {e}")
            return ActionResult(
                outcome=ActionOutcome.FAILED,
                tx_hash=getattr(e, "tx_hash", None),
                detail="Withdraw transaction failed",
            )

        logger.info(f"Withdrawn! ({tx_hash})")
        return ActionResult(outcome=ActionOutcome.CONFIRMED, tx_hash=tx_hash)
