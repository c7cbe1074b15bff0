"""
Web3 client singleton for the configured Ethereum node.
"""
import logging

from web3 import AsyncHTTPProvider, AsyncWeb3

from config import settings
from exceptions import NoProviderError

logger = logging.getLogger(__name__)


class Web3Client:
    """Singleton AsyncWeb3 client; the connection is created lazily."""

    _instance = None
    _w3 = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Web3Client, cls).__new__(cls)
        return cls._instance

    def _initialize_client(self):
        """Create the AsyncWeb3 instance for settings.rpc_url."""
        if not settings.rpc_url:
            raise NoProviderError("No wallet provider configured (RPC_URL is empty)")
        self._w3 = AsyncWeb3(AsyncHTTPProvider(settings.rpc_url))
        logger.info(f"Web3 provider configured: {settings.rpc_url}")

    @property
    def w3(self) -> AsyncWeb3:
        """Get the AsyncWeb3 instance, creating it on first use."""
        if self._w3 is None:
            self._initialize_client()
        return self._w3

    async def is_connected(self) -> bool:
        """True when the node answers; never raises."""
        try:
            return bool(await self.w3.is_connected())
        except Exception as e:
            logger.warning(f"Node connectivity check failed: {e}")
            return False

    async def get_block_number(self) -> int:
        """Latest block number from the node."""
        try:
            return await self.w3.eth.block_number
        except Exception as e:
            logger.error(f"Error fetching block number: {e}")
            raise

    async def close(self):
        """Dispose of the provider session."""
        if self._w3 is not None and hasattr(self._w3.provider, "disconnect"):
            try:
                await self._w3.provider.disconnect()
            except Exception as e:
                logger.debug(f"Provider disconnect failed: {e}")
        self._w3 = None


# Global client instance
web3_client = Web3Client()
