"""Proof submission and audit selection."""

import random
from typing import Optional
import structlog

from ..models import ClaimStatus, utcnow
from ..db import get_agent, get_claim, transition_claim, increment_agent, find_claims
from ..trust import audit_rate, is_banned
from ..security import check_proof_content
from ..errors import NotFoundError, ConflictError, PermissionDeniedError, ValidationError
from ..missions import parse_mission_id, reserve_mission
from .review import verify_claim, parse_claim_id

logger = structlog.get_logger()


def roll_audit(tier: Optional[str]) -> bool:
    """Randomly select a submission for audit at the tier's rate."""
    return random.random() * 100 < audit_rate(tier)


async def submit_proof(
    claim_id: int,
    agent_id: str,
    proof_url: Optional[str],
    proof_notes: Optional[str] = None,
) -> dict:
    """Attach proof to a pending claim.

    The claim moves to ``submitted`` and then either into the audit queue
    or straight to verified. Flagged proofs always go to audit.

    Returns:
        The claim and whether it was audited or auto-approved
    """
    if not proof_url:
        raise ValidationError("proof_url required")
    claim_id = parse_claim_id(claim_id)

    agent = await get_agent(agent_id)
    if not agent:
        raise NotFoundError("Agent not found")
    if is_banned(agent):
        logger.warning("banned_agent_refused", agent_id=agent_id, action="submit")
        raise PermissionDeniedError("Agent is banned")

    claim = await get_claim(claim_id)
    if not claim or claim["agent_id"] != agent_id:
        raise NotFoundError("Claim not found")
    if claim["status"] != ClaimStatus.PENDING.value:
        raise ConflictError(f"Claim already {claim['status']}")

    claim = await transition_claim(claim_id, [ClaimStatus.PENDING.value], {
        "status": ClaimStatus.SUBMITTED.value,
        "proof_url": proof_url,
        "proof_notes": proof_notes,
        "submitted_at": utcnow(),
    })
    if not claim:
        raise ConflictError("Claim was already submitted")

    await increment_agent(agent_id, {"total_claims": 1}, updates={"updated_at": utcnow()})

    check = check_proof_content(proof_url, proof_notes)
    if check.flagged:
        audit_reason = f"Flagged proof: {', '.join(check.reasons)}"
        logger.warning("proof_flagged", claim_id=claim_id, agent_id=agent_id, reasons=check.reasons)
    elif roll_audit(agent.get("trust_tier")):
        audit_reason = "Random audit"
    else:
        audit_reason = None

    if audit_reason:
        claim = await transition_claim(claim_id, [ClaimStatus.SUBMITTED.value], {
            "status": ClaimStatus.AUDITING.value,
            "audit_reason": audit_reason,
        })
        logger.info("claim_queued_for_audit", claim_id=claim_id, reason=audit_reason)
        return {
            "claim": claim,
            "audited": True,
            "message": "Proof submitted! Your claim is being audited.",
        }

    claim = await verify_claim(claim_id, "auto")
    return {
        "claim": claim,
        "audited": False,
        "auto_approved": True,
        "message": "Proof submitted and approved! XP awarded.",
    }


async def submit_claim(
    mission_id,
    agent_id: str,
    proof_url: str,
    proof_notes: Optional[str] = None,
) -> dict:
    """Reserve a mission and submit proof in one step."""
    mission_id = parse_mission_id(mission_id)
    if not proof_url:
        raise ValidationError("proof_url required")

    agent = await get_agent(agent_id)
    if not agent:
        raise NotFoundError("Agent not found")

    claim = await reserve_mission(mission_id, agent_id, agent["wallet_address"])
    return await submit_proof(claim["id"], agent_id, proof_url, proof_notes)


async def get_claim_counts(agent_id: str) -> dict:
    """Number of the agent's claims in each status."""
    counts = {status.value: 0 for status in ClaimStatus}
    for claim in await find_claims({"agent_id": agent_id}):
        counts[claim["status"]] = counts.get(claim["status"], 0) + 1
    return counts
