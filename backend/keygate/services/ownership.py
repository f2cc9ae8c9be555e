"""
ownership.py
- RpcBalanceProvider: ERC-721 balanceOf(address) through one JSON-RPC endpoint
- OwnershipOracle: tries providers in order, falls back to a static allow-list

Endpoints are queried one after another, never raced, so the log always says
exactly which source produced a verdict.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import httpx
from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector

from keygate.core.redact import short_address

logger = logging.getLogger(__name__)

BALANCE_OF_SELECTOR = function_signature_to_4byte_selector("balanceOf(address)")  # 0x70a08231
DEFAULT_RPC_TIMEOUT = 10.0

METHOD_ON_CHAIN = "on-chain"
METHOD_FALLBACK = "fallback"


class ProviderError(Exception):
    pass


def encode_balance_of(address: str) -> str:
    return "0x" + (BALANCE_OF_SELECTOR + encode(["address"], [address.lower()])).hex()


@dataclass(frozen=True)
class OnChain:
    balance: int

    @property
    def owns_token(self) -> bool:
        return self.balance > 0

    @property
    def method(self) -> str:
        return METHOD_ON_CHAIN


@dataclass(frozen=True)
class Fallback:
    listed: bool

    @property
    def owns_token(self) -> bool:
        return self.listed

    @property
    def method(self) -> str:
        return METHOD_FALLBACK

    @property
    def balance(self) -> Optional[int]:
        return None


OwnershipResult = OnChain | Fallback


class RpcBalanceProvider:
    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.timeout = timeout
        self._transport = transport

    def __repr__(self):
        return f"RpcBalanceProvider({self.rpc_url!r})"

    async def _post(self, payload: dict) -> httpx.Response:
        # httpx timeouts are per phase; the caller bounds the whole exchange
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.post(self.rpc_url, json=payload)

    async def balance_of(self, address: str) -> int:
        payload = {
            "jsonrpc": "2.0",
            "method": "eth_call",
            "params": [
                {"to": self.contract_address, "data": encode_balance_of(address)},
                "latest",
            ],
            "id": 1,
        }
        try:
            resp = await asyncio.wait_for(self._post(payload), self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"no answer within {self.timeout}s") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProviderError(f"request failed: {type(e).__name__}") from e

        if not resp.is_success:
            raise ProviderError(f"HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError("unparseable response") from e
        if not isinstance(data, dict):
            raise ProviderError("unparseable response")
        if data.get("error"):
            raise ProviderError(f"rpc error: {data['error']}")

        result = data.get("result")
        if not isinstance(result, str) or not result.startswith("0x") or result == "0x":
            raise ProviderError("empty result")
        try:
            return int(result, 16)
        except ValueError as e:
            raise ProviderError("non-hex result") from e


class OwnershipOracle:
    def __init__(self, providers: Sequence[RpcBalanceProvider], fallback_addresses: Iterable[str] = ()):
        self.providers = list(providers)
        self.fallback_addresses = frozenset(a.lower() for a in fallback_addresses)

    def is_fallback_listed(self, address: str) -> bool:
        return address.lower() in self.fallback_addresses

    async def check(self, address: str) -> OwnershipResult:
        for provider in self.providers:
            try:
                balance = await provider.balance_of(address)
            except ProviderError as e:
                logger.warning("RPC %s failed: %s", provider.rpc_url, e)
                continue
            logger.info(
                "on-chain NFT check via %s: wallet=%s balance=%d",
                provider.rpc_url, short_address(address), balance,
            )
            return OnChain(balance=balance)

        listed = self.is_fallback_listed(address)
        logger.warning(
            "all RPC endpoints failed, using fallback allow-list: wallet=%s listed=%s",
            short_address(address), listed,
        )
        return Fallback(listed=listed)
