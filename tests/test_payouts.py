"""Tests for USD balances and withdrawals."""

import pytest

from swarm import db
from swarm.payouts import get_payout_summary, fund_agent, request_withdrawal, list_withdrawals
from swarm.errors import NotFoundError, PermissionDeniedError, ValidationError


@pytest.mark.asyncio
async def test_summary_for_new_agent(make_agent):
    agent = await make_agent("Saver")
    summary = await get_payout_summary(agent["wallet_address"])
    assert summary == {
        "usd_balance": 0.0,
        "wallet_address": agent["wallet_address"],
        "total_earned": 0.0,
        "total_withdrawn": 0.0,
    }


@pytest.mark.asyncio
async def test_summary_unknown_wallet():
    with pytest.raises(NotFoundError):
        await get_payout_summary("0x" + "2" * 40)
    with pytest.raises(ValidationError):
        await get_payout_summary("")


@pytest.mark.asyncio
async def test_fund_agent(make_agent):
    agent = await make_agent("Funded")
    result = await fund_agent(agent["wallet_address"], "12.5")
    assert result["usd_balance"] == 12.5

    summary = await get_payout_summary(agent["wallet_address"])
    assert summary["total_earned"] == 12.5


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, "lots"])
async def test_fund_agent_rejects_bad_amount(make_agent, amount):
    agent = await make_agent("Funded")
    with pytest.raises(ValidationError):
        await fund_agent(agent["wallet_address"], amount)


@pytest.mark.asyncio
async def test_withdraw_below_threshold(make_agent):
    agent = await make_agent("Small", usd_balance=4.0)
    with pytest.raises(ValidationError, match="threshold"):
        await request_withdrawal(agent["id"], agent["wallet_address"])
    assert (await db.get_agent(agent["id"]))["usd_balance"] == 4.0


@pytest.mark.asyncio
async def test_withdraw_more_than_balance(make_agent):
    agent = await make_agent("Greedy", usd_balance=20.0)
    with pytest.raises(ValidationError, match="Insufficient"):
        await request_withdrawal(agent["id"], agent["wallet_address"], 50)


@pytest.mark.asyncio
async def test_withdraw_full_balance_by_default(make_agent):
    agent = await make_agent("Cashout", usd_balance=25.0)
    result = await request_withdrawal(agent["id"], agent["wallet_address"])

    assert result["withdrawal"]["amount"] == 25.0
    assert result["withdrawal"]["status"] == "pending"
    assert result["withdrawal"]["id"].startswith("wd_")
    assert result["remaining_balance"] == 0.0

    summary = await get_payout_summary(agent["wallet_address"])
    assert summary["total_withdrawn"] == 25.0

    listed = await list_withdrawals(agent["id"], agent["wallet_address"])
    assert listed["count"] == 1
    assert listed["agent"]["usd_withdrawal_threshold"] == 10.0


@pytest.mark.asyncio
async def test_partial_withdrawal(make_agent):
    agent = await make_agent("Partial", usd_balance=30.0)
    result = await request_withdrawal(agent["id"], agent["wallet_address"], 12)
    assert result["remaining_balance"] == 18.0


@pytest.mark.asyncio
async def test_withdraw_wrong_wallet(make_agent):
    agent = await make_agent("Owner", usd_balance=30.0)
    with pytest.raises(PermissionDeniedError):
        await request_withdrawal(agent["id"], "0x" + "3" * 40)
