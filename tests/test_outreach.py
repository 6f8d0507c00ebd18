"""Tests for outreach missions: creation, claiming and proof review."""

import pytest

from swarm import db
from swarm.missions import create_mission
from swarm.missions.outreach import (
    create_outreach_mission,
    list_outreach_missions,
    claim_outreach_mission,
    submit_outreach_proof,
    list_outreach_proofs,
    approve_outreach_proof,
    reject_outreach_proof,
    extract_placeholders,
    fill_template,
    has_transparency_disclosure,
)
from swarm.errors import ConflictError, PermissionDeniedError, ValidationError

TEMPLATE = (
    "Hi {{name}}, I am an AI agent working with The Swarm. "
    "Would {{company}} like a short demo?"
)
TARGETS = [
    {"name": "Ada", "email": "ada@engines.example", "company": "Engines"},
    {"name": "Grace", "company": "Compilers"},
]
EMAIL_PROOF = "From: agent@mail.example\nSubject: Demo\n\nI am an AI agent from The Swarm."


async def _outreach(make_agent, max_claims=2, usd_reward=5.0, **overrides):
    creator = await make_agent("Founder", usd_balance=40.0)
    fields = dict(
        title="Demo outreach",
        target_platform="email",
        success_criteria="Recipient replies to the message",
        proof_type="email_header",
        usd_reward=usd_reward,
        max_claims=max_claims,
        outreach_template=TEMPLATE,
        target_list=TARGETS,
    )
    fields.update(overrides)
    result = await create_outreach_mission(creator["id"], creator["wallet_address"], **fields)
    return creator, result["mission"]


async def _claimed(make_agent, **overrides):
    creator, mission = await _outreach(make_agent, **overrides)
    worker = await make_agent("Caller")
    claimed = await claim_outreach_mission(mission["id"], worker["id"], worker["wallet_address"])
    return creator, worker, mission, claimed["claim"]


def test_template_helpers():
    assert extract_placeholders("{{name}} {{company}} {{name}}") == ["name", "company"]
    assert fill_template("Hi {{Name}} at {{company}}", {"name": "Ada", "company": "Engines"}) == "Hi Ada at Engines"
    assert has_transparency_disclosure("Sent by an autonomous agent")
    assert not has_transparency_disclosure("Hello there")
    assert not has_transparency_disclosure(None)


@pytest.mark.asyncio
async def test_create_escrows_usd(make_agent):
    creator, mission = await _outreach(make_agent, max_claims=3, usd_reward=4.0)
    assert mission["type"] == "outreach"
    assert mission["usd_escrowed"] == 12.0
    assert mission["xp_reward"] == 0
    assert mission["target_url"].endswith("/transparency")
    assert mission["requires_disclosure"] is True
    assert [t["name"] for t in mission["target_list"]] == ["Ada", "Grace"]

    stored = await db.get_agent(creator["id"])
    assert stored["usd_balance"] == 28.0
    assert stored["xp"] == 100


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides, message", [
    ({"outreach_template": "Hi {{name}}, want a demo?"}, "transparency disclosure"),
    ({"usd_reward": 0.5}, "between"),
    ({"usd_reward": 60.0}, "between"),
    ({"target_list": []}, "non-empty"),
    ({"target_list": [{"email": "nobody@example.com"}]}, "needs a name"),
    ({"target_platform": "fax"}, "target_platform"),
    ({"proof_type": "selfie"}, "proof_type"),
])
async def test_create_validation(make_agent, overrides, message):
    with pytest.raises(ValidationError, match=message):
        await _outreach(make_agent, **overrides)
    assert await db.find_missions() == []


@pytest.mark.asyncio
async def test_create_without_disclosure_when_not_required(make_agent):
    _, mission = await _outreach(
        make_agent, outreach_template="Hi {{name}}, want a demo?", requires_disclosure=False,
    )
    assert mission["requires_disclosure"] is False


@pytest.mark.asyncio
async def test_create_needs_usd_balance(make_agent):
    poor = await make_agent("Broke")
    with pytest.raises(ValidationError, match="Insufficient USD"):
        await create_outreach_mission(
            poor["id"], poor["wallet_address"], "Demo outreach", "email",
            "Recipient replies", "email_header", 5.0, 1, TEMPLATE, TARGETS,
        )
    assert (await db.get_agent(poor["id"]))["usd_balance"] == 0
    assert await db.find_missions() == []


@pytest.mark.asyncio
async def test_list_reports_remaining_spots(make_agent):
    await _claimed(make_agent, max_claims=3)
    regular = await make_agent("Regular")
    await create_mission(
        regular["id"], regular["wallet_address"],
        type="twitter_follow", target_url="https://x.com/regular",
    )

    missions = await list_outreach_missions()
    assert len(missions) == 1
    assert missions[0]["claims_count"] == 1
    assert missions[0]["remaining_spots"] == 2
    assert await list_outreach_missions(platform="linkedin") == []


@pytest.mark.asyncio
async def test_claim_returns_work_package(make_agent):
    creator, mission = await _outreach(make_agent)
    worker = await make_agent("Caller")

    claimed = await claim_outreach_mission(mission["id"], worker["id"], worker["wallet_address"])
    assert claimed["claim"]["status"] == "pending"
    assert claimed["claim"]["staked_xp"] == 0
    assert claimed["template_placeholders"] == ["name", "company"]
    assert len(claimed["targets"]) == 2
    assert claimed["proof_type"] == "email_header"
    assert claimed["transparency_link"].endswith("/transparency")
    assert "EMAIL" in claimed["instructions"]

    with pytest.raises(ConflictError, match="already claimed"):
        await claim_outreach_mission(mission["id"], worker["id"], worker["wallet_address"])
    with pytest.raises(ConflictError, match="own mission"):
        await claim_outreach_mission(mission["id"], creator["id"], creator["wallet_address"])


@pytest.mark.asyncio
async def test_claim_stops_when_full(make_agent):
    _, _, mission, _ = await _claimed(make_agent, max_claims=1)
    late = await make_agent("Late")
    with pytest.raises(ConflictError, match="Mission is full"):
        await claim_outreach_mission(mission["id"], late["id"], late["wallet_address"])


@pytest.mark.asyncio
async def test_regular_mission_not_claimable_as_outreach(make_agent):
    creator = await make_agent("Creator")
    worker = await make_agent("Caller")
    mission = (await create_mission(
        creator["id"], creator["wallet_address"],
        type="github_star", target_url="https://github.com/swarm/core",
    ))["mission"]
    with pytest.raises(ConflictError, match="Not an outreach mission"):
        await claim_outreach_mission(mission["id"], worker["id"], worker["wallet_address"])


@pytest.mark.asyncio
async def test_submit_only_for_own_claim(make_agent):
    _, _, _, claim = await _claimed(make_agent)
    other = await make_agent("Other")
    with pytest.raises(PermissionDeniedError, match="own claims"):
        await submit_outreach_proof(claim["id"], other["id"], "email_header", "https://proof.example/1", EMAIL_PROOF)
    assert (await db.get_claim(claim["id"]))["status"] == "pending"


@pytest.mark.asyncio
async def test_disclosed_email_header_is_auto_verified(make_agent):
    _, worker, mission, claim = await _claimed(make_agent)

    result = await submit_outreach_proof(
        claim["id"], worker["id"], "email_header", "https://proof.example/1",
        proof_text=EMAIL_PROOF, email_sent_to="ada@engines.example", recipient_name="Ada",
    )
    assert result["verification_status"] == "verified"
    assert result["auto_verified"] is True
    assert result["claim"]["status"] == "verified"
    assert result["claim"]["usd_released"] == 5.0

    paid = await db.get_agent(worker["id"])
    assert paid["usd_balance"] == 5.0
    assert paid["total_earned"] == 5.0
    assert paid["xp"] == 100

    proof = await db.get_outreach_proof(result["proof_id"])
    assert proof["status"] == "approved"
    assert proof["reviewed_by"] == "auto"
    assert (await db.get_mission(mission["id"]))["current_claims"] == 1

    with pytest.raises(ConflictError):
        await submit_outreach_proof(claim["id"], worker["id"], "email_header", "https://proof.example/2", EMAIL_PROOF)


@pytest.mark.asyncio
async def test_calendar_invite_needs_valid_ics(make_agent):
    _, worker, _, claim = await _claimed(make_agent, proof_type="calendar_invite")
    result = await submit_outreach_proof(
        claim["id"], worker["id"], "calendar_invite", "https://proof.example/invite",
        proof_text="SUMMARY:Intro call with an AI agent",
    )
    assert result["verification_status"] == "pending_manual_review"
    assert result["claim"]["status"] == "submitted"


@pytest.mark.asyncio
async def test_screenshot_goes_to_manual_review_and_admin_pays(make_agent):
    _, worker, mission, claim = await _claimed(make_agent, proof_type="screenshot")

    result = await submit_outreach_proof(
        claim["id"], worker["id"], "screenshot", "https://img.example/sent.png",
        proof_text="I am an AI agent",
    )
    assert result["verification_status"] == "pending_manual_review"
    assert result["auto_verified"] is False
    assert (await db.get_agent(worker["id"]))["usd_balance"] == 0

    queue = await list_outreach_proofs()
    assert len(queue) == 1
    assert queue[0]["agent_name"] == "Caller"
    assert queue[0]["mission_title"] == "Demo outreach"

    approved = await approve_outreach_proof(str(result["proof_id"]), "admin_1", notes="Looks right")
    assert approved["usd_credited"] == 5.0
    assert approved["proof"]["status"] == "approved"
    assert approved["proof"]["review_notes"] == "Looks right"
    assert approved["claim"]["verified_by"] == "admin_1"
    assert (await db.get_agent(worker["id"]))["usd_balance"] == 5.0
    assert await list_outreach_proofs() == []

    with pytest.raises(ConflictError, match="already approved"):
        await approve_outreach_proof(result["proof_id"], "admin_2")
    assert (await db.get_agent(worker["id"]))["usd_balance"] == 5.0


@pytest.mark.asyncio
async def test_rejected_proof_can_be_resubmitted(make_agent):
    _, worker, _, claim = await _claimed(make_agent, proof_type="screenshot")
    first = await submit_outreach_proof(claim["id"], worker["id"], "screenshot", "https://img.example/blurry.png")

    rejected = await reject_outreach_proof(first["proof_id"], "admin")
    assert rejected["proof"]["status"] == "rejected"
    assert rejected["proof"]["review_notes"] == "Proof does not meet requirements"
    assert rejected["claim"]["status"] == "pending"
    assert (await db.get_agent(worker["id"]))["fraud_flags"] == 0

    second = await submit_outreach_proof(
        claim["id"], worker["id"], "email_header", "https://proof.example/header", EMAIL_PROOF,
    )
    assert second["proof_id"] != first["proof_id"]
    assert second["verification_status"] == "verified"

    with pytest.raises(ConflictError):
        await reject_outreach_proof(first["proof_id"], "admin")


@pytest.mark.asyncio
async def test_review_rejects_bad_proof_id():
    with pytest.raises(ValidationError, match="Invalid proof id"):
        await approve_outreach_proof("abc", "admin")
