"""CLI tests."""

import asyncio
import json
import stat

import pytest
from typer.testing import CliRunner

from swarm.cli import app, config_file
from swarm.claims import submit as submit_module
from swarm.missions import create_mission

runner = CliRunner()


@pytest.fixture
def logged_in(make_agent):
    agent = asyncio.run(make_agent("Runner"))
    result = runner.invoke(app, ["login", agent["wallet_address"]])
    assert result.exit_code == 0, result.output
    return agent


def test_login_saves_private_config(logged_in):
    path = config_file()
    saved = json.loads(path.read_text())

    assert saved["agent_id"] == logged_in["id"]
    assert saved["wallet"] == logged_in["wallet_address"]
    assert saved["token"]
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_login_unknown_wallet():
    result = runner.invoke(app, ["login", "0x" + "5" * 40])
    assert result.exit_code == 1
    assert not config_file().exists()


def test_logout(logged_in):
    result = runner.invoke(app, ["logout"])
    assert result.exit_code == 0
    assert "Logged out." in result.output
    assert not config_file().exists()

    again = runner.invoke(app, ["logout"])
    assert "Not logged in." in again.output


def test_claim_submit_requires_login():
    result = runner.invoke(app, ["claim", "submit", "1", "https://proof.example/1"])
    assert result.exit_code == 1
    assert "Not logged in" in result.output


def test_claim_submit_rejects_non_numeric_id(logged_in):
    result = runner.invoke(app, ["claim", "submit", "abc", "https://proof.example/1"])
    assert result.exit_code == 1
    assert "Invalid mission id" in result.output


def test_claim_submit(logged_in, make_agent, monkeypatch):
    monkeypatch.setattr(submit_module, "roll_audit", lambda tier: False)
    creator = asyncio.run(make_agent("Creator"))
    mission = asyncio.run(create_mission(
        creator["id"], creator["wallet_address"],
        type="github_star", target_url="https://github.com/swarm/core",
    ))["mission"]

    result = runner.invoke(app, ["claim", "submit", str(mission["id"]), "https://github.com/runner"])
    assert result.exit_code == 0, result.output
    assert "Claim submitted! ID: 1" in result.output
    assert "verified" in result.output

    stats = runner.invoke(app, ["agent", "stats"])
    assert stats.exit_code == 0
    assert "Runner" in stats.output
    assert "110" in stats.output


def test_missions_list(make_agent):
    creator = asyncio.run(make_agent("Creator"))
    asyncio.run(create_mission(
        creator["id"], creator["wallet_address"],
        type="twitter_follow", target_url="https://x.com/swarm", title="Follow the swarm",
    ))

    result = runner.invoke(app, ["missions", "list"])
    assert result.exit_code == 0
    assert "Follow the swarm" in result.output


def test_missions_list_sorts_before_limit(make_agent):
    creator = asyncio.run(make_agent("Creator", xp=500))
    for title, xp in [("Small task", 10), ("Large task", 90), ("Medium task", 40)]:
        asyncio.run(create_mission(
            creator["id"], creator["wallet_address"],
            type="twitter_follow", target_url="https://x.com/swarm", title=title, xp_reward=xp,
        ))

    result = runner.invoke(app, ["missions", "list", "--sort", "xp", "--limit", "1"])
    assert result.exit_code == 0
    assert "Large task" in result.output
    assert "Small task" not in result.output
    assert "Medium task" not in result.output


def test_missions_list_empty():
    result = runner.invoke(app, ["missions", "list", "--sort", "reward"])
    assert result.exit_code == 0
    assert "No active missions" in result.output


def test_missions_list_bad_sort():
    result = runner.invoke(app, ["missions", "list", "--sort", "name"])
    assert result.exit_code == 1


def test_agent_balance(logged_in):
    result = runner.invoke(app, ["agent", "balance"])
    assert result.exit_code == 0
    assert "Below minimum" in result.output


def test_missions_get(make_agent):
    creator = asyncio.run(make_agent("Creator"))
    mission = asyncio.run(create_mission(
        creator["id"], creator["wallet_address"],
        type="custom", target_url="https://example.com/task", instructions="Say hello",
    ))["mission"]

    result = runner.invoke(app, ["missions", "get", str(mission["id"])])
    assert result.exit_code == 0
    assert "Say hello" in result.output

    missing = runner.invoke(app, ["missions", "get", "999"])
    assert missing.exit_code == 1
