"""Shared fixtures: in-memory MongoDB, settings and wallet helpers."""

import os

# Must be set before swarm settings are first read
os.environ["SESSION_SECRET"] = "test-session-secret-0123456789abcdef"
os.environ["MONGODB_DATABASE"] = "swarm_test"

import pytest
import pytest_asyncio
from eth_account import Account
from eth_account.messages import encode_defunct
from mongomock_motor import AsyncMongoMockClient

from swarm import db as swarm_db
from swarm.config import get_settings
from swarm.auth import create_challenge, create_session_token
from swarm.agents import register_agent


@pytest.fixture(autouse=True)
def settings(tmp_path, monkeypatch):
    """Fresh settings per test, with CLI credentials under tmp_path."""
    monkeypatch.setenv("CLI_CONFIG_DIR", str(tmp_path / "swarm-cli"))
    monkeypatch.delenv("ADMIN_WALLETS", raising=False)
    monkeypatch.delenv("AUTH_ENABLED", raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    client = AsyncMongoMockClient()
    database = client["swarm_test"]
    monkeypatch.setattr(swarm_db, "_client", client)
    monkeypatch.setattr(swarm_db, "_db", database)
    return database


def sign_challenge(account) -> tuple[str, str]:
    """Return (message, signature) for a fresh challenge signed by ``account``."""
    message = create_challenge(account.address)["challenge"]
    signed = Account.sign_message(encode_defunct(text=message), private_key=account.key)
    return message, "0x" + bytes(signed.signature).hex()


@pytest.fixture
def wallet():
    return Account.create()


@pytest.fixture
def make_agent():
    """Factory registering an agent with a fresh wallet."""

    async def _make(name="Agent", xp=None, **updates):
        account = Account.create()
        agent = await register_agent(account.address, name)
        fields = dict(updates)
        if xp is not None:
            fields["xp"] = xp
        if fields:
            await swarm_db.update_agent(agent["id"], fields)
            agent = await swarm_db.get_agent(agent["id"])
        agent["account"] = account
        return agent

    return _make


@pytest_asyncio.fixture
async def admin(make_agent):
    return await make_agent("Overseer", trust_tier="admin")


def bearer(agent: dict) -> dict:
    token = create_session_token(agent["id"], agent["wallet_address"], agent["name"])
    return {"Authorization": f"Bearer {token}"}
