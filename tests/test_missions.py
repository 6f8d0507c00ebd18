"""Tests for mission creation, reservation, flagging and admin controls."""

import pytest

from swarm import db
from swarm.missions import (
    create_mission,
    get_mission,
    list_missions,
    reserve_mission,
    flag_mission,
    list_missions_admin,
    set_mission_status,
    feature_mission,
    parse_mission_id,
)
from swarm.missions.create import VALID_TYPES
from swarm.claims import reject_claim
from swarm.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError


async def _mission(creator, **kwargs):
    params = {"type": "github_star", "target_url": "https://github.com/swarm/core", "xp_reward": 10}
    params.update(kwargs)
    result = await create_mission(creator["id"], creator["wallet_address"], **params)
    return result["mission"]


@pytest.mark.parametrize("value", ["abc", "", "1.5", None, "-3"])
def test_parse_mission_id_rejects_non_numeric(value):
    with pytest.raises(ValidationError):
        parse_mission_id(value)


def test_parse_mission_id_accepts_digits():
    assert parse_mission_id(" 42 ") == 42
    assert parse_mission_id(7) == 7


@pytest.mark.asyncio
async def test_create_mission_escrows_xp(make_agent):
    creator = await make_agent("Creator", xp=100)
    result = await create_mission(
        creator["id"], creator["wallet_address"],
        type="youtube_subscribe", target_url="https://youtube.com/@swarm",
        max_claims=3, xp_reward=20,
    )

    assert result["xp_deducted"] == 60
    assert result["mission"]["id"] == 1
    assert result["mission"]["status"] == "active"
    assert (await db.get_agent(creator["id"]))["xp"] == 40

    txns = await db.get_xp_transactions(creator["id"])
    assert any(t["action"] == "escrow" and t["amount"] == -60 for t in txns)


@pytest.mark.asyncio
async def test_create_mission_ids_increase(make_agent):
    creator = await make_agent("Creator", xp=100)
    first = await _mission(creator)
    second = await _mission(creator)
    assert second["id"] == first["id"] + 1


@pytest.mark.asyncio
async def test_create_mission_insufficient_xp(make_agent):
    creator = await make_agent("Broke", xp=5)
    with pytest.raises(ValidationError, match="Insufficient XP"):
        await _mission(creator)


@pytest.mark.asyncio
async def test_create_mission_invalid_type(make_agent):
    creator = await make_agent("Creator")
    with pytest.raises(ValidationError, match="Invalid mission_type"):
        await _mission(creator, type="tiktok_dance")


@pytest.mark.asyncio
async def test_create_mission_blocked_content(make_agent):
    creator = await make_agent("Scammer")
    with pytest.raises(ValidationError, match="blocked"):
        await _mission(creator, instructions="Post your private key in the comments")
    assert (await db.get_agent(creator["id"]))["xp"] == 100


@pytest.mark.asyncio
async def test_create_mission_wallet_mismatch(make_agent):
    creator = await make_agent("Creator")
    with pytest.raises(PermissionDeniedError):
        await create_mission(creator["id"], "0x" + "9" * 40, type="custom", target_url="https://x.io")


@pytest.mark.asyncio
async def test_list_missions_priority_then_newest(make_agent):
    creator = await make_agent("Creator", xp=1000)
    older = await _mission(creator)
    newer = await _mission(creator)
    featured = await _mission(creator)
    await feature_mission(featured["id"])

    ids = [m["id"] for m in await list_missions()]
    assert ids == [featured["id"], newer["id"], older["id"]]


@pytest.mark.asyncio
async def test_list_missions_filters_type(make_agent):
    creator = await make_agent("Creator", xp=1000)
    await _mission(creator, type="github_star")
    await _mission(creator, type="twitter_follow", target_url="https://x.com/swarm")
    found = await list_missions(type="twitter_follow")
    assert [m["type"] for m in found] == ["twitter_follow"]


@pytest.mark.asyncio
async def test_reserve_creates_pending_claim(make_agent):
    creator = await make_agent("Creator")
    worker = await make_agent("Worker")
    mission = await _mission(creator)

    claim = await reserve_mission(mission["id"], worker["id"], worker["wallet_address"])
    assert claim["status"] == "pending"
    assert claim["staked_xp"] == 10
    assert claim["mission_id"] == mission["id"]


@pytest.mark.asyncio
async def test_reserve_rules(make_agent):
    creator = await make_agent("Creator")
    worker = await make_agent("Worker")
    mission = await _mission(creator)

    with pytest.raises(ConflictError, match="own mission"):
        await reserve_mission(mission["id"], creator["id"], creator["wallet_address"])

    await reserve_mission(mission["id"], worker["id"], worker["wallet_address"])
    with pytest.raises(ConflictError, match="already claimed"):
        await reserve_mission(mission["id"], worker["id"], worker["wallet_address"])

    with pytest.raises(NotFoundError):
        await reserve_mission(999, worker["id"], worker["wallet_address"])


@pytest.mark.asyncio
async def test_reserve_refuses_banned_agent(make_agent):
    creator = await make_agent("Creator")
    banned = await make_agent("Banned", trust_tier="banned", fraud_flags=3)
    mission = await _mission(creator)
    with pytest.raises(PermissionDeniedError):
        await reserve_mission(mission["id"], banned["id"], banned["wallet_address"])


@pytest.mark.asyncio
async def test_reserve_refuses_inactive_mission(make_agent):
    creator = await make_agent("Creator")
    worker = await make_agent("Worker")
    mission = await _mission(creator)
    await set_mission_status(mission["id"], "paused")
    with pytest.raises(ConflictError, match="not active"):
        await reserve_mission(mission["id"], worker["id"], worker["wallet_address"])


@pytest.mark.asyncio
async def test_flags_pause_mission(make_agent):
    creator = await make_agent("Creator")
    mission = await _mission(creator)
    flaggers = [await make_agent(f"Flagger{i}") for i in range(3)]

    first = await flag_mission(mission["id"], flaggers[0]["id"], flaggers[0]["wallet_address"], "spam")
    assert first["flag_count"] == 1
    assert not first["paused"]

    with pytest.raises(ConflictError, match="already flagged"):
        await flag_mission(mission["id"], flaggers[0]["id"], flaggers[0]["wallet_address"])

    await flag_mission(mission["id"], flaggers[1]["id"], flaggers[1]["wallet_address"])
    third = await flag_mission(mission["id"], flaggers[2]["id"], flaggers[2]["wallet_address"])
    assert third["paused"]

    paused = await get_mission(mission["id"])
    assert paused["status"] == "paused"
    assert paused["flagged"] is True


@pytest.mark.asyncio
async def test_cannot_flag_own_mission(make_agent):
    creator = await make_agent("Creator")
    mission = await _mission(creator)
    with pytest.raises(ConflictError):
        await flag_mission(mission["id"], creator["id"], creator["wallet_address"])


@pytest.mark.asyncio
async def test_admin_listing_includes_creator_name(make_agent):
    creator = await make_agent("Maker")
    await _mission(creator)
    missions = await list_missions_admin("all")
    assert missions[0]["creator_name"] == "Maker"


@pytest.mark.asyncio
async def test_set_mission_status_validation(make_agent):
    creator = await make_agent("Creator")
    mission = await _mission(creator)
    with pytest.raises(ValidationError):
        await set_mission_status(mission["id"], "exploded")
    with pytest.raises(NotFoundError):
        await set_mission_status(404, "paused")


@pytest.mark.asyncio
async def test_usd_reward_requires_funded_creator(make_agent):
    creator = await make_agent("Unfunded", xp=100)
    with pytest.raises(ValidationError, match="Insufficient USD"):
        await _mission(creator, max_claims=3, usd_reward=5.0)

    unchanged = await db.get_agent(creator["id"])
    assert unchanged["xp"] == 100
    assert unchanged["usd_balance"] == 0
    assert await db.find_missions() == []


@pytest.mark.asyncio
async def test_create_mission_escrows_usd(make_agent):
    creator = await make_agent("Sponsor", xp=100, usd_balance=20.0)
    result = await create_mission(
        creator["id"], creator["wallet_address"],
        type="github_star", target_url="https://github.com/swarm/core",
        max_claims=3, xp_reward=10, usd_reward=5.0,
    )

    assert result["xp_deducted"] == 30
    assert result["usd_deducted"] == 15.0
    assert result["mission"]["usd_escrowed"] == 15.0

    funded = await db.get_agent(creator["id"])
    assert funded["xp"] == 70
    assert funded["usd_balance"] == 5.0
    assert funded["total_withdrawn"] == 0


@pytest.mark.asyncio
async def test_xp_shortfall_takes_no_usd(make_agent):
    creator = await make_agent("Halfway", xp=5, usd_balance=50.0)
    with pytest.raises(ValidationError, match="Insufficient XP"):
        await _mission(creator, usd_reward=1.0)
    assert (await db.get_agent(creator["id"]))["usd_balance"] == 50.0


@pytest.mark.asyncio
async def test_reservations_stop_at_max_claims(make_agent):
    creator = await make_agent("Creator")
    first = await make_agent("First")
    second = await make_agent("Second")
    mission = await _mission(creator, max_claims=1)

    await reserve_mission(mission["id"], first["id"], first["wallet_address"])
    with pytest.raises(ConflictError, match="Mission is full"):
        await reserve_mission(mission["id"], second["id"], second["wallet_address"])

    stored = await db.get_mission(mission["id"])
    assert stored["reserved_claims"] == 1
    assert len(await db.find_claims({"mission_id": mission["id"]})) == 1


@pytest.mark.asyncio
async def test_rejected_claim_frees_its_slot(make_agent):
    creator = await make_agent("Creator")
    first = await make_agent("First")
    second = await make_agent("Second")
    mission = await _mission(creator, max_claims=1)

    claim = await reserve_mission(mission["id"], first["id"], first["wallet_address"])
    await reject_claim(claim["id"], "Never did it")

    retry = await reserve_mission(mission["id"], second["id"], second["wallet_address"])
    assert retry["status"] == "pending"
    assert (await db.get_mission(mission["id"]))["reserved_claims"] == 1


@pytest.mark.asyncio
async def test_outreach_missions_not_reserved_directly(make_agent):
    creator = await make_agent("Creator")
    worker = await make_agent("Worker")
    mission = await _mission(creator)
    await db.update_mission(mission["id"], {"type": "outreach"})
    with pytest.raises(ConflictError, match="outreach"):
        await reserve_mission(mission["id"], worker["id"], worker["wallet_address"])


@pytest.mark.asyncio
async def test_list_missions_sorts_before_limit(make_agent):
    creator = await make_agent("Creator", xp=1000, usd_balance=100.0)
    await _mission(creator, title="Small", xp_reward=5)
    top_xp = await _mission(creator, title="Big", xp_reward=50)
    top_usd = await _mission(creator, title="Paid", xp_reward=10, usd_reward=2.0)
    await _mission(creator, title="Newest", xp_reward=1)

    assert [m["id"] for m in await list_missions(sort="xp", limit=1)] == [top_xp["id"]]
    assert [m["id"] for m in await list_missions(sort="reward", limit=1)] == [top_usd["id"]]


@pytest.mark.asyncio
async def test_list_missions_rejects_unknown_sort():
    with pytest.raises(ValidationError, match="Invalid sort"):
        await list_missions(sort="name")


def test_outreach_is_not_a_regular_mission_type():
    assert "outreach" not in VALID_TYPES
