"""Tests for creator applications, approval and revenue share."""

import pytest

from swarm import db
from swarm.creators import (
    apply_creator,
    review_creator,
    list_creators,
    get_active_creator,
    record_mission_earning,
    pay_creator_earning,
    get_creator_earnings,
    revenue_share_for,
)
from swarm.missions import create_mission
from swarm.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError


async def _active_creator(make_agent, followers=12_000, **fields):
    agent = await make_agent("Streamer", xp=500, **fields)
    creator = await apply_creator(agent["id"], "youtube", followers, "https://youtube.com/@streamer")
    await review_creator(creator["id"], True, "admin")
    return agent, await db.get_creator(creator["id"])


def test_revenue_share_tiers():
    assert revenue_share_for(1_000) == 0.15
    assert revenue_share_for(5_000) == 0.16
    assert revenue_share_for(60_000) == 0.22
    assert revenue_share_for(250_000) == 0.25


@pytest.mark.asyncio
async def test_apply_validation(make_agent):
    agent = await make_agent("Streamer")
    with pytest.raises(ValidationError, match="Invalid category"):
        await apply_creator(agent["id"], "radio", 5_000, "https://example.com/me")
    with pytest.raises(ValidationError, match="Minimum 1,000 followers"):
        await apply_creator(agent["id"], "twitch", 999, "https://twitch.tv/me")
    with pytest.raises(ValidationError):
        await apply_creator(agent["id"], "twitch", 5_000, "")
    with pytest.raises(NotFoundError):
        await apply_creator("agent_missing", "twitch", 5_000, "https://twitch.tv/me")
    assert await db.find_creators() == []


@pytest.mark.asyncio
async def test_apply_once_per_agent(make_agent):
    agent = await make_agent("Streamer")
    creator = await apply_creator(agent["id"], "podcast", 2_000, "https://pod.example/show", "@show")
    assert creator["id"].startswith("creator_")
    assert creator["status"] == "pending"
    assert creator["social_handle"] == "@show"

    with pytest.raises(ConflictError, match="status: pending"):
        await apply_creator(agent["id"], "podcast", 3_000, "https://pod.example/show")


@pytest.mark.asyncio
async def test_approve_sets_share_and_marks_agent(make_agent):
    agent = await make_agent("Streamer")
    creator = await apply_creator(agent["id"], "youtube", 60_000, "https://youtube.com/@big")

    approved = await review_creator(creator["id"], True, "admin_1")
    assert approved["status"] == "active"
    assert approved["revenue_share"] == 0.22
    assert approved["approved_by"] == "admin_1"
    assert approved["approved_at"] is not None

    stored = await db.get_agent(agent["id"])
    assert stored["is_creator"] is True
    assert stored["creator_category"] == "youtube"
    assert stored["creator_revenue_share"] == 0.22
    assert stored["creator_follower_count"] == 60_000
    assert (await get_active_creator(agent["id"]))["id"] == creator["id"]

    with pytest.raises(ConflictError, match="already active"):
        await review_creator(creator["id"], True, "admin_2")


@pytest.mark.asyncio
async def test_reject_uses_default_reason(make_agent):
    agent = await make_agent("Streamer")
    creator = await apply_creator(agent["id"], "tiktok", 1_500, "https://tiktok.com/@me")

    rejected = await review_creator(creator["id"], False, "admin")
    assert rejected["status"] == "rejected"
    assert rejected["rejection_reason"] == "Not approved"
    assert (await db.get_agent(agent["id"]))["is_creator"] is False

    with pytest.raises(PermissionDeniedError):
        await get_active_creator(agent["id"])
    with pytest.raises(ConflictError):
        await review_creator(creator["id"], True, "admin")


@pytest.mark.asyncio
async def test_review_unknown_creator():
    with pytest.raises(NotFoundError):
        await review_creator("creator_missing", True, "admin")


@pytest.mark.asyncio
async def test_list_creators_filters_by_status(make_agent):
    pending = await make_agent("Waiting")
    await apply_creator(pending["id"], "newsletter", 4_000, "https://news.example/")
    await _active_creator(make_agent)

    listed = await list_creators()
    assert [c["agent_name"] for c in listed] == ["Waiting"]
    assert listed[0]["wallet_address"] == pending["wallet_address"]

    assert len(await list_creators("all")) == 2
    assert [c["agent_name"] for c in await list_creators("active")] == ["Streamer"]


@pytest.mark.asyncio
async def test_funded_mission_by_creator_logs_earning(make_agent):
    agent, creator = await _active_creator(make_agent, usd_balance=30.0)
    result = await create_mission(
        agent["id"], agent["wallet_address"],
        type="youtube_subscribe", target_url="https://youtube.com/@streamer",
        xp_reward=10, max_claims=4, usd_reward=5.0,
    )
    assert result["usd_deducted"] == 20.0

    earnings = await db.find_creator_earnings({"creator_id": creator["id"]})
    assert len(earnings) == 1
    assert earnings[0]["amount"] == 3.6
    assert earnings[0]["status"] == "pending"
    assert earnings[0]["earnings_type"] == "mission_post"
    assert earnings[0]["mission_id"] == result["mission"]["id"]


@pytest.mark.asyncio
async def test_unfunded_or_non_creator_missions_log_nothing(make_agent):
    agent, _ = await _active_creator(make_agent)
    await create_mission(
        agent["id"], agent["wallet_address"],
        type="twitter_follow", target_url="https://x.com/streamer",
    )
    regular = await make_agent("Regular", usd_balance=10.0)
    await create_mission(
        regular["id"], regular["wallet_address"],
        type="twitter_follow", target_url="https://x.com/regular", usd_reward=2.0,
    )
    assert await db.find_creator_earnings() == []
    assert await record_mission_earning(regular["id"], 1, 10.0) is None


@pytest.mark.asyncio
async def test_pay_earning_credits_creator_once(make_agent):
    agent, _ = await _active_creator(make_agent)
    earning = await record_mission_earning(agent["id"], 7, 10.0)
    assert earning["amount"] == 1.8

    paid = await pay_creator_earning(earning["id"], "admin")
    assert paid["status"] == "paid"
    assert paid["paid_at"] is not None

    stored = await db.get_agent(agent["id"])
    assert stored["usd_balance"] == 1.8
    assert stored["total_earned"] == 1.8

    with pytest.raises(ConflictError, match="already paid"):
        await pay_creator_earning(earning["id"], "admin")
    assert (await db.get_agent(agent["id"]))["usd_balance"] == 1.8

    with pytest.raises(NotFoundError):
        await pay_creator_earning("earn_missing", "admin")


@pytest.mark.asyncio
async def test_earnings_summary(make_agent):
    agent, creator = await _active_creator(make_agent)
    first = await record_mission_earning(agent["id"], 1, 10.0)
    await record_mission_earning(agent["id"], 2, 20.0)
    await pay_creator_earning(first["id"], "admin")

    summary = await get_creator_earnings()
    assert summary["total_creators"] == 1
    row = summary["earnings"][creator["id"]]
    assert row["total_earned"] == 5.4
    assert row["total_paid"] == 1.8
    assert row["pending_payout"] == 3.6
    assert row["mission_count"] == 2
    assert row["last_payout_date"] is not None
