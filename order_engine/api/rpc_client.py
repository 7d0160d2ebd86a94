"""
Asynchronous JSON-RPC client for an Ethereum node.

Covers the handful of calls the engine needs: account discovery, contract
reads, transaction submission, receipts and ``eth_sign``.
"""
import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from order_engine.api.exceptions import LedgerConnectionError, LedgerRPCError

logger = logging.getLogger(__name__)


class JsonRpcClient:
    """
    Ledger provider backed by a JSON-RPC endpoint.

    Example:
        async with JsonRpcClient("http://localhost:8545") as ledger:
            accounts = await ledger.accounts()
    """

    DEFAULT_URL = "http://localhost:8545"

    def __init__(self, url: str = DEFAULT_URL, timeout: float = 30.0):
        self.url = url
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._ids = itertools.count(1)
        self._request_count = 0

    @classmethod
    def from_config(cls, config) -> "JsonRpcClient":
        """Client for ``config.rpc_url`` with ``config.rpc_timeout``."""
        return cls(config.rpc_url, timeout=config.rpc_timeout)

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Content-Type": "application/json"},
            )
        logger.info(f"JsonRpcClient connected to {self.url}")

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        logger.info(f"JsonRpcClient closed after {self._request_count} requests")

    async def __aenter__(self) -> "JsonRpcClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if self._session is None or self._session.closed:
            await self.connect()

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        self._request_count += 1

        try:
            async with self._session.post(self.url, json=payload) as response:
                if response.status >= 400:
                    raise LedgerConnectionError(
                        f"HTTP {response.status} from {self.url}: {await response.text()}"
                    )
                body = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            logger.error(f"Network error during {method}: {e}")
            raise LedgerConnectionError(f"Network error: {e}")
        except asyncio.TimeoutError:
            logger.error(f"Timeout after {self.timeout}s during {method}")
            raise LedgerConnectionError(f"Timeout after {self.timeout}s calling {method}")

        if not isinstance(body, dict):
            raise LedgerConnectionError(f"Malformed JSON-RPC response for {method}: {body!r}")

        error = body.get("error")
        if error:
            raise LedgerRPCError(
                int(error.get("code", -32000)),
                error.get("message", "unknown error"),
                error.get("data"),
            )
        return body.get("result")

    async def accounts(self) -> List[str]:
        """Addresses the node can sign and send for."""
        return await self._request("eth_accounts")

    async def net_version(self) -> str:
        return await self._request("net_version")

    async def call(self, to: str, data: str, block: str = "latest") -> str:
        """Run a read-only contract call; returns the 0x-hex return data."""
        return await self._request("eth_call", [{"to": to, "data": data}, block])

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Submit a transaction signed by the node; returns the tx hash."""
        return await self._request("eth_sendTransaction", [tx])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt as returned by the node, or None while pending."""
        return await self._request("eth_getTransactionReceipt", [tx_hash])

    async def sign(self, address: str, data: str) -> str:
        """``eth_sign``; the node prefixes the personal-message header."""
        return await self._request("eth_sign", [address, data])
