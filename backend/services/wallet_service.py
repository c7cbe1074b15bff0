"""
Wallet service — account authorization (ConnectionGate) and transaction signers.

Two wallet providers are supported:
    NodeWalletProvider      — accounts managed by the Ethereum node, obtained
                              with eth_requestAccounts; the node signs.
    LocalKeyWalletProvider  — a private key from WALLET_PRIVATE_KEY; the
                              client signs and submits raw transactions.

Providers notify on_accounts_changed() listeners when a later
request_accounts() returns a different primary account.
"""
import asyncio
import logging
from typing import Callable, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from config import settings
from exceptions import AuthorizationDeniedError, NoProviderError, TeaClientError
from utils.validators import validate_evm_address
from web3_client import Web3Client, web3_client

logger = logging.getLogger(__name__)

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001

# Listeners are plain callables; async work must be scheduled by the listener
AccountsListener = Callable[[list[str]], None]


# ════════════════════════════════════════════════════════════════════
# Signers
# ════════════════════════════════════════════════════════════════════


class NodeSigner:
    """Sends transactions from a node-managed (unlocked) account."""

    def __init__(self, address: str):
        self.address = address

    async def send(self, w3, contract_fn, value: int = 0) -> str:
        tx_hash = await contract_fn.transact({"from": self.address, "value": value})
        return tx_hash.to_0x_hex() if hasattr(tx_hash, "to_0x_hex") else str(tx_hash)


class LocalKeySigner:
    """Builds, signs locally and broadcasts raw transactions."""

    def __init__(self, account: LocalAccount):
        self._account = account
        self.address = account.address
        # Nonce read through broadcast must not interleave between two sends
        self._send_lock = asyncio.Lock()

    async def send(self, w3, contract_fn, value: int = 0) -> str:
        async with self._send_lock:
            tx = await contract_fn.build_transaction({
                "from": self.address,
                "value": value,
                "nonce": await w3.eth.get_transaction_count(self.address, "pending"),
            })
            signed = self._account.sign_transaction(tx)
            tx_hash = await w3.eth.send_raw_transaction(signed.raw_transaction)
        return tx_hash.to_0x_hex() if hasattr(tx_hash, "to_0x_hex") else str(tx_hash)


# ════════════════════════════════════════════════════════════════════
# Providers
# ════════════════════════════════════════════════════════════════════


class WalletProvider:
    """Base provider: account tracking and change listeners."""

    def __init__(self, client: Web3Client | None = None):
        self._client = client or web3_client
        self._listeners: list[AccountsListener] = []
        self._last_accounts: list[str] = []

    @property
    def w3(self):
        return self._client.w3

    async def _fetch_accounts(self) -> list[str]:
        raise NotImplementedError

    def build_signer(self, account: str):
        raise NotImplementedError

    async def request_accounts(self) -> list[str]:
        """Ask the provider for authorized accounts, notifying listeners on change."""
        accounts = await self._fetch_accounts()
        previous = self._last_accounts
        self._last_accounts = list(accounts)
        if previous and previous[:1] != accounts[:1]:
            logger.info(f"Wallet accounts changed: {previous[:1]} -> {accounts[:1]}")
            self._notify(list(accounts))
        return accounts

    def on_accounts_changed(self, callback: AccountsListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(callback)

        def _remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def _notify(self, accounts: list[str]) -> None:
        for callback in list(self._listeners):
            try:
                callback(accounts)
            except Exception as e:
                logger.error(f"Accounts listener failed: {e}")


class NodeWalletProvider(WalletProvider):
    """Accounts exposed by the node via eth_requestAccounts (eth_accounts fallback)."""

    async def _fetch_accounts(self) -> list[str]:
        w3 = self.w3
        try:
            response = await w3.provider.make_request("eth_requestAccounts", [])
        except (ConnectionError, OSError) as e:
            raise NoProviderError(f"Wallet provider unreachable: {e}") from e

        error = response.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            if code == USER_REJECTED_CODE:
                raise AuthorizationDeniedError("User rejected the account request")
            # Plain nodes do not implement eth_requestAccounts
            logger.debug(f"eth_requestAccounts unavailable ({error}), falling back to eth_accounts")
            try:
                return list(await w3.eth.accounts)
            except (ConnectionError, OSError) as e:
                raise NoProviderError(f"Wallet provider unreachable: {e}") from e

        return list(response.get("result") or [])

    def build_signer(self, account: str) -> NodeSigner:
        return NodeSigner(account)


class LocalKeyWalletProvider(WalletProvider):
    """Single account derived from a private key held in configuration."""

    def __init__(self, private_key: str, client: Web3Client | None = None):
        super().__init__(client)
        self._private_key = private_key
        self._account: Optional[LocalAccount] = None

    def _load_account(self) -> LocalAccount:
        if self._account is None:
            try:
                self._account = Account.from_key(self._private_key)
            except Exception as e:
                raise AuthorizationDeniedError(f"Invalid wallet private key: {e}") from e
        return self._account

    async def _fetch_accounts(self) -> list[str]:
        return [self._load_account().address]

    def build_signer(self, account: str) -> LocalKeySigner:
        local = self._load_account()
        if local.address.lower() != account.lower():
            raise AuthorizationDeniedError(f"No key held for account {account}")
        return LocalKeySigner(local)


def build_wallet_provider(client: Web3Client | None = None) -> Optional[WalletProvider]:
    """Pick the provider from settings; None when no RPC endpoint is configured."""
    if not settings.rpc_url:
        return None
    if settings.uses_local_key:
        return LocalKeyWalletProvider(settings.wallet_private_key, client)
    return NodeWalletProvider(client)


# ════════════════════════════════════════════════════════════════════
# ConnectionGate
# ════════════════════════════════════════════════════════════════════


class ConnectionGate:
    """Obtains and remembers the authorized wallet account."""

    def __init__(self, provider: Optional[WalletProvider]):
        self.provider = provider
        self._account: Optional[str] = None

    @property
    def account(self) -> Optional[str]:
        return self._account

    async def request_account(self) -> str:
        """
        Prompt the provider for account access and return the first account.

        Raises:
            NoProviderError: no provider configured or reachable
            AuthorizationDeniedError: provider refused or returned no accounts
        """
        if self.provider is None:
            raise NoProviderError("Please install a wallet provider")

        try:
            accounts = await self.provider.request_accounts()
        except TeaClientError:
            raise
        except Exception as e:
            raise AuthorizationDeniedError(f"Account request failed: {e}") from e

        if not accounts:
            raise AuthorizationDeniedError("Wallet returned no accounts")

        try:
            account = validate_evm_address(accounts[0])
        except ValueError as e:
            raise AuthorizationDeniedError(str(e)) from e

        self._account = account
        return account

    def clear(self) -> None:
        self._account = None
