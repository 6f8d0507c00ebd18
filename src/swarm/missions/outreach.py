"""Outreach missions: agents contact a list of people on a creator's behalf.

A creator escrows ``usd_reward * max_claims`` USD and supplies a message
template with ``{{placeholders}}`` plus the target list. Agents claim a
slot, send the message, then submit proof. Proof that visibly discloses
the sender is an AI agent is verified on the spot; everything else waits
for an admin.
"""

import re
from typing import Optional
import structlog

from ..models import (
    SwarmMission,
    MissionType,
    MissionStatus,
    ClaimStatus,
    OutreachProof,
    ProofStatus,
    utcnow,
)
from ..db import (
    create_mission as db_create_mission,
    get_mission as db_get_mission,
    find_missions,
    get_agent,
    get_claim,
    transition_claim,
    increment_agent,
    next_sequence,
    create_outreach_proof,
    get_outreach_proof,
    transition_outreach_proof,
    find_outreach_proofs,
    get_agents_by_ids,
)
from ..config import get_settings
from ..security import check_mission_content
from ..trust import is_banned
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..claims.review import verify_claim, parse_claim_id
from ..creators import record_mission_earning
from .create import escrow_funds, get_mission, load_owned_agent
from .reserve import reserve_mission

logger = structlog.get_logger()

OUTREACH_PLATFORMS = ["email", "linkedin", "twitter", "phone", "sms"]
PROOF_TYPES = ["screenshot", "email_header", "calendar_invite", "call_recording"]
MIN_USD_REWARD = 1.0
MAX_USD_REWARD = 50.0

DISCLOSURE_KEYWORDS = [
    "openclaw",
    "swarm",
    "ai agent",
    "artificial intelligence agent",
    "autonomous agent",
    "i'm an agent",
    "i am an agent",
    "this is an agent",
]

PLATFORM_INSTRUCTIONS = {
    "email": "Send the message to the target's email address and keep a screenshot of the sent mail.",
    "linkedin": "Send a connection request or direct message on LinkedIn and screenshot the conversation.",
    "twitter": "Send a direct message or reply on X and screenshot the message.",
    "phone": "Call the target and say you are an AI agent from The Swarm. Record the call with consent.",
    "sms": "Send the message by SMS and screenshot the conversation.",
}

_PLACEHOLDER_RE = re.compile(r"\{\{([^}]+)\}\}")


def transparency_url() -> str:
    return f"{get_settings().app_url.rstrip('/')}/transparency"


def extract_placeholders(template: str) -> list[str]:
    """Unique ``{{placeholder}}`` names in order of first use."""
    return list(dict.fromkeys(_PLACEHOLDER_RE.findall(template or "")))


def fill_template(template: str, target: dict) -> str:
    """Replace ``{{key}}`` (case-insensitive) with the target's values."""
    filled = template
    for key in ("name", "email", "company", "platform_handle", *target.keys()):
        value = target.get(key)
        pattern = re.compile(r"\{\{" + re.escape(key) + r"\}\}", re.I)
        filled = pattern.sub(lambda _: str(value) if value is not None else "", filled)
    return filled


def has_transparency_disclosure(text: Optional[str]) -> bool:
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in DISCLOSURE_KEYWORDS)


def _clean_targets(target_list) -> list[dict]:
    if not isinstance(target_list, list) or not target_list:
        raise ValidationError("target_list must be a non-empty array")
    targets = []
    for target in target_list:
        if not isinstance(target, dict) or not str(target.get("name") or "").strip():
            raise ValidationError("Every target needs a name")
        targets.append({
            "name": str(target["name"]).strip(),
            "email": target.get("email") or "",
            "platform_handle": target.get("platform_handle"),
            "company": target.get("company"),
        })
    return targets


def _summary(mission: dict) -> dict:
    reserved = mission.get("reserved_claims", 0)
    return {
        **mission,
        "claims_count": reserved,
        "remaining_spots": max(mission.get("max_claims", 1) - reserved, 0),
    }


async def create_outreach_mission(
    agent_id: str,
    wallet: str,
    title: str,
    target_platform: str,
    success_criteria: str,
    proof_type: str,
    usd_reward: float,
    max_claims: int,
    outreach_template: str,
    target_list: list,
    requires_disclosure: bool = True,
) -> dict:
    """Create an outreach mission, escrowing its USD from the creator."""
    if not title or not success_criteria or not outreach_template:
        raise ValidationError(
            "Missing required fields: title, target_platform, success_criteria, "
            "proof_type, usd_reward, max_claims, outreach_template, target_list"
        )
    if target_platform not in OUTREACH_PLATFORMS:
        raise ValidationError(f"Invalid target_platform. Must be one of: {', '.join(OUTREACH_PLATFORMS)}")
    if proof_type not in PROOF_TYPES:
        raise ValidationError(f"Invalid proof_type. Must be one of: {', '.join(PROOF_TYPES)}")
    if not MIN_USD_REWARD <= usd_reward <= MAX_USD_REWARD:
        raise ValidationError("usd_reward must be between $1 and $50")
    if max_claims < 1:
        raise ValidationError("max_claims must be at least 1")
    targets = _clean_targets(target_list)
    if requires_disclosure and not has_transparency_disclosure(outreach_template):
        raise ValidationError("Outreach template must include transparency disclosure")

    check = check_mission_content(title, f"{success_criteria} {outreach_template}", None)
    if check.blocked:
        logger.warning("mission_content_blocked", agent_id=agent_id, reasons=check.reasons)
        raise ValidationError(f"Mission blocked: {', '.join(check.reasons)}")

    agent = await load_owned_agent(agent_id, wallet)
    usd_cost = round(usd_reward * max_claims, 2)
    await escrow_funds(agent, 0, usd_cost)

    mission = SwarmMission(
        id=await next_sequence("missions"),
        title=title,
        type=MissionType.OUTREACH,
        creator_id=agent_id,
        target_url=transparency_url(),
        instructions=PLATFORM_INSTRUCTIONS[target_platform],
        max_claims=max_claims,
        xp_reward=0,
        usd_reward=usd_reward,
        usd_escrowed=usd_cost,
        target_platform=target_platform,
        proof_type=proof_type,
        success_criteria=success_criteria,
        outreach_template=outreach_template,
        target_list=targets,
        requires_disclosure=requires_disclosure,
    )
    await db_create_mission(mission.model_dump())
    logger.info("outreach_mission_created", mission_id=mission.id, agent_id=agent_id, usd_cost=usd_cost)

    await record_mission_earning(agent_id, mission.id, usd_cost)

    return {
        "mission": await db_get_mission(mission.id),
        "usd_deducted": usd_cost,
    }


async def list_outreach_missions(
    platform: Optional[str] = None,
    status: str = MissionStatus.ACTIVE.value,
    limit: int = 50,
) -> list[dict]:
    """Outreach missions, newest first, with remaining capacity."""
    query = {"type": MissionType.OUTREACH.value, "status": status}
    if platform:
        query["target_platform"] = platform
    missions = await find_missions(query, sort=[("created_at", -1), ("id", -1)], limit=limit)
    return [_summary(m) for m in missions]


async def claim_outreach_mission(mission_id, agent_id: str, wallet: str) -> dict:
    """Reserve an outreach slot and hand back everything needed to do it."""
    claim = await reserve_mission(mission_id, agent_id, wallet, outreach=True)
    mission = await get_mission(claim["mission_id"])
    template = mission.get("outreach_template") or ""
    targets = mission.get("target_list") or []

    instructions = (
        f"1. Review the target list ({len(targets)} people to reach out to)\n"
        "2. Fill the template for each person, replacing every {{placeholder}}\n"
        f"3. Send the outreach via {mission['target_platform'].upper()}\n"
        f"4. Include the transparency link {transparency_url()}\n"
        f"5. Keep a {mission['proof_type']} as proof and submit it\n"
        f"You earn ${mission['usd_reward']:.2f} once the outreach is verified."
    )
    return {
        "claim": claim,
        "mission_id": mission["id"],
        "targets": targets,
        "template": template,
        "template_placeholders": extract_placeholders(template),
        "success_criteria": mission.get("success_criteria"),
        "proof_type": mission.get("proof_type"),
        "target_platform": mission.get("target_platform"),
        "requires_disclosure": mission.get("requires_disclosure", False),
        "transparency_link": transparency_url(),
        "instructions": instructions,
    }


def _disclosure_detected(proof_type: str, proof_text: Optional[str]) -> bool:
    """Whether the proof's text shows the agent disclosed itself.

    Screenshots and recordings carry no readable text here, so they always
    go to manual review.
    """
    if not proof_text:
        return False
    if proof_type == "email_header":
        return has_transparency_disclosure(proof_text)
    if proof_type == "calendar_invite":
        return (
            "BEGIN:VCALENDAR" in proof_text
            and "END:VCALENDAR" in proof_text
            and has_transparency_disclosure(proof_text)
        )
    return False


async def submit_outreach_proof(
    claim_id,
    agent_id: str,
    proof_type: str,
    proof_url: str,
    proof_text: Optional[str] = None,
    email_sent_to: Optional[str] = None,
    recipient_name: Optional[str] = None,
    notes: Optional[str] = None,
) -> dict:
    """Attach outreach proof to a claim, auto-verifying disclosed outreach."""
    if not proof_type or not proof_url:
        raise ValidationError("Missing required fields: claim_id, proof_type, proof_url")
    if proof_type not in PROOF_TYPES:
        raise ValidationError(f"Invalid proof_type. Must be one of: {', '.join(PROOF_TYPES)}")
    claim_id = parse_claim_id(claim_id)

    agent = await get_agent(agent_id)
    if not agent:
        raise NotFoundError("Agent not found")
    if is_banned(agent):
        logger.warning("banned_agent_refused", agent_id=agent_id, action="outreach_submit")
        raise PermissionDeniedError("Agent is banned")

    claim = await get_claim(claim_id)
    if not claim:
        raise NotFoundError("Claim not found")
    if claim["agent_id"] != agent_id:
        raise PermissionDeniedError("You can only submit proof for your own claims")
    mission = await get_mission(claim["mission_id"])
    if mission.get("type") != MissionType.OUTREACH.value:
        raise ValidationError("Not an outreach claim")

    claim = await transition_claim(claim_id, [ClaimStatus.PENDING.value], {
        "status": ClaimStatus.SUBMITTED.value,
        "proof_url": proof_url,
        "proof_notes": notes,
        "submitted_at": utcnow(),
    })
    if not claim:
        raise ConflictError("Claim already has proof waiting for review")
    await increment_agent(agent_id, {"total_claims": 1}, updates={"updated_at": utcnow()})

    disclosed = _disclosure_detected(proof_type, proof_text)
    proof = OutreachProof(
        id=await next_sequence("outreach_proofs"),
        claim_id=claim_id,
        mission_id=mission["id"],
        agent_id=agent_id,
        proof_type=proof_type,
        proof_url=proof_url,
        proof_text=proof_text,
        email_sent_to=email_sent_to,
        recipient_name=recipient_name,
        notes=notes,
        has_disclosure=disclosed,
    )
    await create_outreach_proof(proof.model_dump())

    if disclosed:
        claim = await verify_claim(claim_id, "auto")
        await transition_outreach_proof(proof.id, ProofStatus.PENDING.value, {
            "status": ProofStatus.APPROVED.value,
            "auto_verified": True,
            "reviewed_by": "auto",
            "reviewed_at": utcnow(),
        })
        logger.info("outreach_proof_auto_verified", proof_id=proof.id, claim_id=claim_id)

    return {
        "proof_id": proof.id,
        "claim": claim,
        "verification_status": "verified" if disclosed else "pending_manual_review",
        "auto_verified": disclosed,
        "disclosure_detected": disclosed,
        "message": (
            "Proof verified! Your USD reward has been credited."
            if disclosed else
            "Proof submitted for manual review."
        ),
    }


async def list_outreach_proofs(status: str = ProofStatus.PENDING.value, limit: int = 50) -> list[dict]:
    """Proofs in a review status, oldest first, with agent and mission names."""
    proofs = await find_outreach_proofs({"status": status}, limit=limit)
    agents = await get_agents_by_ids({p["agent_id"] for p in proofs})
    missions: dict[int, dict] = {}
    for proof in proofs:
        if proof["mission_id"] not in missions:
            missions[proof["mission_id"]] = await db_get_mission(proof["mission_id"]) or {}
        proof["agent_name"] = agents.get(proof["agent_id"], {}).get("name", "Unknown")
        proof["mission_title"] = missions[proof["mission_id"]].get("title", "Unknown")
    return proofs


async def _pending_proof(proof_id) -> dict:
    text = str(proof_id).strip()
    if not text.isdigit():
        raise ValidationError(f"Invalid proof id: {proof_id!r}")
    proof_id = int(text)
    proof = await get_outreach_proof(proof_id)
    if not proof:
        raise NotFoundError("Proof not found")
    if proof["status"] != ProofStatus.PENDING.value:
        raise ConflictError(f"Proof already {proof['status']}")
    return proof


async def approve_outreach_proof(proof_id, reviewed_by: str, notes: Optional[str] = None) -> dict:
    """Accept a proof and pay its claim from the mission's escrow."""
    proof = await _pending_proof(proof_id)

    # The claim transition is the gate: a second approval fails here
    claim = await verify_claim(proof["claim_id"], reviewed_by)
    proof = await transition_outreach_proof(proof["id"], ProofStatus.PENDING.value, {
        "status": ProofStatus.APPROVED.value,
        "reviewed_by": reviewed_by,
        "review_notes": notes,
        "reviewed_at": utcnow(),
    }) or await get_outreach_proof(proof["id"])
    logger.info("outreach_proof_approved", proof_id=proof["id"], claim_id=claim["id"], reviewed_by=reviewed_by)
    return {"proof": proof, "claim": claim, "usd_credited": claim["usd_released"]}


async def reject_outreach_proof(proof_id, reviewed_by: str, reason: Optional[str] = None) -> dict:
    """Refuse a proof. The claim goes back to pending so the agent can resubmit."""
    proof = await _pending_proof(proof_id)
    reason = reason or "Proof does not meet requirements"

    proof = await transition_outreach_proof(proof["id"], ProofStatus.PENDING.value, {
        "status": ProofStatus.REJECTED.value,
        "reviewed_by": reviewed_by,
        "review_notes": reason,
        "reviewed_at": utcnow(),
    })
    if not proof:
        raise ConflictError("Proof was already reviewed")

    claim = await transition_claim(proof["claim_id"], [ClaimStatus.SUBMITTED.value], {
        "status": ClaimStatus.PENDING.value,
        "audit_reason": reason,
    })
    logger.info("outreach_proof_rejected", proof_id=proof["id"], claim_id=proof["claim_id"], reviewed_by=reviewed_by)
    return {"proof": proof, "claim": claim}
