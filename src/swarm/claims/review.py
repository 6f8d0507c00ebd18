"""Claim verification: audit queue, approval and rejection."""

from typing import Optional
import structlog

from ..models import ClaimStatus, AuditResult, MissionStatus, XPTransaction, utcnow
from ..db import (
    get_claim,
    transition_claim,
    find_claims,
    get_mission,
    increment_agent,
    increment_mission,
    update_mission,
    get_agents_by_ids,
    create_xp_transaction,
)
from ..trust import record_fraud_flag
from ..missions.reserve import release_slot
from ..errors import NotFoundError, ConflictError, ValidationError

logger = structlog.get_logger()

APPROVABLE = [ClaimStatus.SUBMITTED.value, ClaimStatus.AUDITING.value]
REJECTABLE = [ClaimStatus.PENDING.value, ClaimStatus.SUBMITTED.value, ClaimStatus.AUDITING.value]


async def _take_paid_slot(mission: dict) -> dict:
    """Count one more verified claim, never past ``max_claims``."""
    max_claims = mission.get("max_claims", 1)
    progressed = await increment_mission(
        mission["id"],
        {"current_claims": 1},
        conditions={"current_claims": {"$lt": max_claims}},
    )
    if not progressed:
        logger.warning("mission_slots_exhausted", mission_id=mission["id"], max_claims=max_claims)
        raise ConflictError("Mission has no funded slots left")
    return progressed


async def _release_rewards(claim: dict, mission: dict) -> dict:
    """Credit a verified claim's XP and USD from the mission's escrow."""
    xp = claim.get("staked_xp") or mission.get("xp_reward", 0)
    usd = float(mission.get("usd_reward", 0) or 0)

    await increment_agent(
        claim["agent_id"],
        {
            "xp": xp,
            "missions_completed": 1,
            "verified_claims": 1,
            "usd_balance": usd,
            "total_earned": usd,
        },
        updates={"updated_at": utcnow()},
    )

    if xp:
        await create_xp_transaction(XPTransaction(
            agent_id=claim["agent_id"],
            amount=xp,
            action="mission_complete",
            description=f"Completed mission claim #{claim['id']}",
            mission_id=claim["mission_id"],
            claim_id=claim["id"],
        ).model_dump())

    return {"xp_released": xp, "usd_released": usd}


async def verify_claim(claim_id: int, verified_by: str) -> dict:
    """Mark a submitted or audited claim verified and pay it out.

    The mission's paid-slot counter is advanced before the claim moves, so
    a mission never pays out more claims than its creator escrowed.

    Raises:
        ConflictError: the claim was already decided (or not yet submitted),
            or the mission has no funded slots left
    """
    existing = await get_claim(claim_id)
    if not existing:
        raise NotFoundError("Claim not found")
    if existing["status"] not in APPROVABLE:
        raise ConflictError(f"Claim is {existing['status']}, cannot approve")

    mission = await get_mission(existing["mission_id"])
    if not mission:
        raise NotFoundError("Mission not found")
    progressed = await _take_paid_slot(mission)

    claim = await transition_claim(claim_id, APPROVABLE, {
        "status": ClaimStatus.VERIFIED.value,
        "audit_result": AuditResult.PASSED.value,
        "verified_by": verified_by,
        "verified_at": utcnow(),
    })
    if not claim:
        await increment_mission(mission["id"], {"current_claims": -1})
        current = await get_claim(claim_id)
        raise ConflictError(f"Claim is {current['status']}, cannot approve")

    released = await _release_rewards(claim, mission)
    await transition_claim(claim_id, [ClaimStatus.VERIFIED.value], released)
    claim.update(released)

    if progressed["current_claims"] >= progressed.get("max_claims", 1):
        await update_mission(mission["id"], {
            "status": MissionStatus.COMPLETED.value,
            "completed_at": utcnow(),
        })
        logger.info("mission_completed", mission_id=mission["id"])

    logger.info(
        "claim_verified",
        claim_id=claim_id,
        agent_id=claim["agent_id"],
        verified_by=verified_by,
        xp=released["xp_released"],
    )
    return claim


async def approve_claim(claim_id, verified_by: str = "admin") -> dict:
    return await verify_claim(parse_claim_id(claim_id), verified_by)


async def reject_claim(claim_id, reason: Optional[str], rejected_by: str = "admin") -> dict:
    """Reject a claim and add a fraud flag to its owner.

    Returns:
        The rejected claim and the owner's new flag count and tier
    """
    if not reason or not reason.strip():
        raise ValidationError("Rejection reason required")
    claim_id = parse_claim_id(claim_id)

    claim = await transition_claim(claim_id, REJECTABLE, {
        "status": ClaimStatus.REJECTED.value,
        "audit_result": AuditResult.FAILED.value,
        "audit_reason": reason,
        "verified_by": rejected_by,
        "rejected_at": utcnow(),
    })
    if not claim:
        existing = await get_claim(claim_id)
        if not existing:
            raise NotFoundError("Claim not found")
        raise ConflictError(f"Claim already {existing['status']}")

    await release_slot(claim["mission_id"])
    agent = await record_fraud_flag(claim["agent_id"], f"Claim rejected: {reason}", claim_id=claim_id)

    logger.info(
        "claim_rejected",
        claim_id=claim_id,
        agent_id=claim["agent_id"],
        rejected_by=rejected_by,
        fraud_flags=agent["fraud_flags"],
        trust_tier=agent["trust_tier"],
    )
    return {
        "claim": claim,
        "agent": {
            "id": agent["id"],
            "fraud_flags": agent["fraud_flags"],
            "trust_tier": agent["trust_tier"],
        },
    }


async def get_audit_queue() -> list[dict]:
    """Claims waiting for manual audit, oldest submission first."""
    claims = await find_claims(
        {"status": ClaimStatus.AUDITING.value},
        sort=[("submitted_at", 1)],
    )
    agents = await get_agents_by_ids({c["agent_id"] for c in claims})

    queue = []
    missions: dict[int, dict] = {}
    for claim in claims:
        mission_id = claim["mission_id"]
        if mission_id not in missions:
            missions[mission_id] = await get_mission(mission_id) or {}
        mission = missions[mission_id]
        agent = agents.get(claim["agent_id"], {})
        queue.append({
            **claim,
            "agent_name": agent.get("name", "Unknown"),
            "agent_trust_tier": agent.get("trust_tier"),
            "mission_title": mission.get("title", "Unknown"),
            "mission_type": mission.get("type"),
            "target_url": mission.get("target_url"),
            "flag_reason": claim.get("audit_reason"),
        })
    return queue


def parse_claim_id(value) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    if not text.isdigit():
        raise ValidationError(f"Invalid claim id: {value!r}")
    return int(text)
