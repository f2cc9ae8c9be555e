import asyncio
import time
import httpx
import pytest
from keygate.services.ownership import (
    Fallback,
    OnChain,
    OwnershipOracle,
    ProviderError,
    RpcBalanceProvider,
    encode_balance_of,
)

ADDRESS = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"
CONTRACT = "0x217ddEad61a42369A266F1Fb754EB5d3EBadc88a"


def test_encode_balance_of():
    data = encode_balance_of(ADDRESS)
    assert data == "0x70a08231" + "0" * 24 + ADDRESS[2:].lower()
    assert len(data) == 2 + 8 + 64


@pytest.mark.asyncio
async def test_provider_sends_eth_call_against_latest(rpc_transport):
    transport = rpc_transport(3)
    provider = RpcBalanceProvider("https://rpc.test", CONTRACT, transport=transport)
    assert await provider.balance_of(ADDRESS) == 3

    body = transport.calls[0]
    assert body["method"] == "eth_call"
    assert body["params"][0] == {"to": CONTRACT, "data": encode_balance_of(ADDRESS)}
    assert body["params"][1] == "latest"


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(500, text="upstream down"),
    httpx.Response(429, json={"error": "rate limited"}),
    httpx.Response(200, text="<html>not json</html>"),
    httpx.Response(200, json=["not", "an", "object"]),
    httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "execution reverted"}}),
    httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x"}),
    httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None}),
    httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0xnothex"}),
    httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": 5}),
])
async def test_provider_soft_failures(rpc_transport, response):
    provider = RpcBalanceProvider("https://rpc.test", CONTRACT, transport=rpc_transport(response))
    with pytest.raises(ProviderError):
        await provider.balance_of(ADDRESS)


@pytest.mark.asyncio
async def test_provider_timeout_is_soft_failure(rpc_transport):
    transport = rpc_transport(httpx.ReadTimeout("timed out"))
    provider = RpcBalanceProvider("https://rpc.test", CONTRACT, transport=transport)
    with pytest.raises(ProviderError):
        await provider.balance_of(ADDRESS)


@pytest.mark.asyncio
async def test_first_healthy_endpoint_wins(make_oracle):
    oracle = make_oracle(httpx.Response(502), httpx.ConnectError("refused"), 2, 0)
    result = await oracle.check(ADDRESS)
    assert result == OnChain(balance=2)
    assert result.owns_token is True
    assert result.method == "on-chain"
    # the fourth endpoint is never asked
    assert oracle.providers[3]._transport.calls == []


@pytest.mark.asyncio
async def test_zero_balance_on_chain_is_not_overridden_by_allow_list(make_oracle):
    oracle = make_oracle(0, fallback=[ADDRESS])
    result = await oracle.check(ADDRESS)
    assert result == OnChain(balance=0)
    assert result.owns_token is False


@pytest.mark.asyncio
async def test_all_endpoints_failing_uses_fallback_list(make_oracle):
    oracle = make_oracle(
        httpx.Response(500),
        httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x"}),
        httpx.ReadTimeout("slow"),
        fallback=[ADDRESS.lower()],
    )
    result = await oracle.check(ADDRESS)
    assert isinstance(result, Fallback)
    assert result.method == "fallback"
    assert result.owns_token is True
    assert result.balance is None


@pytest.mark.asyncio
async def test_fallback_denies_unlisted_wallet(make_oracle):
    oracle = make_oracle(httpx.Response(503), fallback=["0x" + "1" * 40])
    result = await oracle.check(ADDRESS)
    assert result == Fallback(listed=False)
    assert result.owns_token is False


@pytest.mark.asyncio
async def test_no_providers_goes_straight_to_fallback():
    oracle = OwnershipOracle([], fallback_addresses=[ADDRESS])
    assert await oracle.check(ADDRESS) == Fallback(listed=True)


@pytest.mark.asyncio
async def test_unreachable_url_does_not_raise():
    oracle = OwnershipOracle([RpcBalanceProvider("not a url", CONTRACT, timeout=0.1)])
    assert await oracle.check(ADDRESS) == Fallback(listed=False)


@pytest.mark.asyncio
async def test_stalled_endpoint_is_cut_off_at_timeout():
    async def stall(request):
        await asyncio.sleep(5)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x1"})

    provider = RpcBalanceProvider("https://rpc.test", CONTRACT, timeout=0.05, transport=httpx.MockTransport(stall))
    started = time.monotonic()
    with pytest.raises(ProviderError):
        await provider.balance_of(ADDRESS)
    assert time.monotonic() - started < 1
