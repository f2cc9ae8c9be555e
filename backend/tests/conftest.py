import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ETHEREUM_RPC_URLS", "https://rpc-a.test,https://rpc-b.test")

import json
import httpx
import pytest
import pytest_asyncio
from eth_account import Account
from eth_account.messages import encode_defunct
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from keygate.database import Base, get_db
from keygate.core.deps import get_ownership_oracle, get_session_issuer
from keygate.main import app
from keygate.services.ownership import OwnershipOracle, RpcBalanceProvider
from keygate.services.session_issuer import SessionIssuer

NFT_CONTRACT = "0x217ddEad61a42369A266F1Fb754EB5d3EBadc88a"


def balance_hex(balance: int) -> str:
    return "0x" + balance.to_bytes(32, "big").hex()


def _rpc_transport(*responses):
    """MockTransport answering eth_call requests from a script.

    Each item is an int balance, an httpx.Response, or an exception to raise.
    The last item repeats once the script runs out.
    """
    script = list(responses)
    calls = []

    def handler(request: httpx.Request):
        calls.append(json.loads(request.content))
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": balance_hex(item)})

    transport = httpx.MockTransport(handler)
    transport.calls = calls
    return transport


def _make_oracle(*answers, fallback=()):
    providers = [
        RpcBalanceProvider(f"https://rpc-{i}.test", NFT_CONTRACT, transport=_rpc_transport(a))
        for i, a in enumerate(answers)
    ]
    return OwnershipOracle(providers, fallback_addresses=fallback)


@pytest.fixture
def rpc_transport():
    return _rpc_transport


@pytest.fixture
def make_oracle():
    """Build an oracle with one provider per answer, tried in order."""
    return _make_oracle


@pytest.fixture
def sign():
    def _sign(account, message: str) -> str:
        signed = account.sign_message(encode_defunct(text=message))
        return "0x" + bytes(signed.signature).hex()
    return _sign


@pytest.fixture
def wallet():
    return Account.create()


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def use_oracle():
    def _use(oracle):
        app.dependency_overrides[get_ownership_oracle] = lambda: oracle
        return oracle
    return _use


@pytest.fixture
def use_admins():
    def _use(*addresses):
        issuer = SessionIssuer(admin_addresses=addresses, wallet_email_domain="wallet.keygate")
        app.dependency_overrides[get_session_issuer] = lambda: issuer
        return issuer
    _use()
    return _use


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'keygate.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def test_db(session_factory, use_admins):
    async def override_get_db():
        async with session_factory() as session:
            yield session
    app.dependency_overrides[get_db] = override_get_db
    yield session_factory
