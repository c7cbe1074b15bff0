"""
Contract service — ABI loading, session-scoped contract handles, event filters.

A ContractSession turns an authorized wallet into exactly one ContractHandle
bound to {contract address, ABI, signer}. The handle wraps every remote call
of the BuyMeATea contract and converts failures into RemoteCallError.
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from config import settings
from domain.constants import NEW_MEMO_EVENT
from exceptions import RemoteCallError
from models import MemoRecord
from services.wallet_service import ConnectionGate
from utils.validators import validate_evm_address

logger = logging.getLogger(__name__)

# Path to contracts directory
CONTRACTS_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "contracts")


def _get_abi_path(contract_name: str) -> str:
    return os.path.join(CONTRACTS_DIR, contract_name, "abi.json")


def load_abi(contract_name: str) -> list[dict]:
    """
    Load the ABI for a contract.

    Accepts both a bare ABI list and a compiler artifact ({"abi": [...]}).

    Args:
        contract_name: Name of the contract (folder name under contracts/)

    Returns:
        ABI as a list of entries
    """
    abi_path = _get_abi_path(contract_name)
    if not os.path.exists(abi_path):
        raise FileNotFoundError(
            f"ABI file not found: {abi_path}. "
            f"Copy the compiled artifact to contracts/{contract_name}/abi.json"
        )
    with open(abi_path) as f:
        data = json.load(f)
    return data["abi"] if isinstance(data, dict) else data


def get_contract_info(contract_name: str) -> dict:
    """Summarize the ABI: function and event names."""
    try:
        abi = load_abi(contract_name)
    except FileNotFoundError as e:
        return {"available": False, "error": str(e)}
    return {
        "available": True,
        "name": contract_name,
        "functions": sorted(e["name"] for e in abi if e.get("type") == "function"),
        "events": sorted(e["name"] for e in abi if e.get("type") == "event"),
    }


def _hex(tx_hash: Any) -> str:
    return tx_hash.to_0x_hex() if hasattr(tx_hash, "to_0x_hex") else str(tx_hash)


# ════════════════════════════════════════════════════════════════════
# Live event source
# ════════════════════════════════════════════════════════════════════


class MemoEventSource:
    """A NewMemo log filter installed on the node."""

    def __init__(self, w3, event_filter):
        self._w3 = w3
        self._filter = event_filter
        self.last_block: Optional[int] = None
        self.closed = False

    async def poll(self) -> list[MemoRecord]:
        """Return memos emitted since the previous poll, in log order."""
        try:
            entries = await self._filter.get_new_entries()
        except Exception as e:
            raise RemoteCallError(f"NewMemo filter poll failed: {e}") from e

        records = []
        for entry in entries:
            try:
                records.append(MemoRecord.from_event_args(entry["args"]))
            except Exception as e:
                logger.warning(f"Skipping malformed NewMemo log: {e}")
                continue
            block = entry.get("blockNumber")
            if block is not None and (self.last_block is None or block > self.last_block):
                self.last_block = block
        return records

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._w3.eth.uninstall_filter(self._filter.filter_id)
        except Exception as e:
            logger.debug(f"Uninstalling NewMemo filter failed: {e}")


# ════════════════════════════════════════════════════════════════════
# Contract handle
# ════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ContractHandle:
    """Immutable binding of the remote contract for one session."""

    address: str
    abi: list
    signer: Any
    contract: Any
    w3: Any

    @property
    def account(self) -> str:
        return self.signer.address

    async def get_owner(self) -> str:
        try:
            return await self.contract.functions.getOwner().call()
        except Exception as e:
            raise RemoteCallError(f"getOwner() failed: {e}") from e

    async def get_memos(self) -> list[MemoRecord]:
        try:
            raw = await self.contract.functions.getMemos().call()
        except Exception as e:
            raise RemoteCallError(f"getMemos() failed: {e}") from e
        return [MemoRecord.from_tuple(item) for item in raw]

    async def buy_tea(self, name: str, message: str, value_wei: int) -> str:
        """Send buyTea(name, message) with value_wei attached; returns the tx hash once mined."""
        fn = self.contract.functions.buyTea(name, message)
        return await self._send_and_wait(fn, value_wei, "buyTea")

    async def withdraw(self) -> str:
        return await self._send_and_wait(self.contract.functions.withdraw(), 0, "withdraw")

    async def open_new_memo_filter(self) -> MemoEventSource:
        try:
            event = getattr(self.contract.events, NEW_MEMO_EVENT)
            event_filter = await event.create_filter(from_block="latest")
        except Exception as e:
            raise RemoteCallError(f"Installing {NEW_MEMO_EVENT} filter failed: {e}") from e
        return MemoEventSource(self.w3, event_filter)

    async def _send_and_wait(self, fn, value: int, label: str) -> str:
        try:
            tx_hash = await self.signer.send(self.w3, fn, value)
        except Exception as e:
            raise RemoteCallError(f"{label} transaction rejected: {e}") from e

        logger.info(f"{label} submitted: {tx_hash}")

        # web3's receipt wait applies its own default timeout
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash)
        except Exception as e:
            raise RemoteCallError(f"{label} confirmation failed: {e}", tx_hash=tx_hash) from e

        if receipt["status"] == 0:
            raise RemoteCallError(f"{label} reverted", tx_hash=tx_hash)
        return _hex(receipt.get("transactionHash", tx_hash))


# ════════════════════════════════════════════════════════════════════
# Session lifecycle
# ════════════════════════════════════════════════════════════════════


class ContractSession:
    """Builds and owns the single ContractHandle of an authorized session."""

    def __init__(
        self,
        gate: ConnectionGate,
        contract_address: str | None = None,
        contract_name: str | None = None,
    ):
        self._gate = gate
        self._address = contract_address or settings.contract_address
        self._contract_name = contract_name or settings.contract_name
        self._handle: Optional[ContractHandle] = None

    @property
    def handle(self) -> Optional[ContractHandle]:
        return self._handle

    async def initialize(self) -> ContractHandle:
        """
        (a) authorize an account, (b) build its signer, (c) bind the contract.

        Raises:
            NoProviderError, AuthorizationDeniedError
        """
        if self._handle is not None:
            return self._handle

        account = await self._gate.request_account()
        provider = self._gate.provider
        signer = provider.build_signer(account)

        w3 = provider.w3
        abi = load_abi(self._contract_name)
        address = validate_evm_address(self._address)
        contract = w3.eth.contract(address=address, abi=abi)

        self._handle = ContractHandle(
            address=address,
            abi=abi,
            signer=signer,
            contract=contract,
            w3=w3,
        )
        logger.info(f"Contract session ready: {address} as {account}")
        return self._handle

    async def close(self) -> None:
        if self._handle is not None:
            logger.info(f"Contract session closed: {self._handle.address}")
        self._handle = None
