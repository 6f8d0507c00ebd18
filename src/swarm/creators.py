"""Creator programme: applications, approval and revenue share.

Agents with an established audience apply with their follower count and
a link proving it. An admin approves or rejects the application; approval
fixes the creator's revenue share from the follower count. From then on
every USD-funded mission the creator posts logs a ``mission_post``
earning of ``usd_escrowed * revenue_share``, which stays pending until an
admin pays it out.
"""

import uuid
from typing import Optional
import structlog
from pymongo.errors import DuplicateKeyError

from .models import SwarmCreator, CreatorEarning, CreatorStatus, EarningStatus, utcnow
from .db import (
    create_creator,
    get_creator,
    get_creator_for_agent,
    transition_creator,
    find_creators,
    create_creator_earning,
    get_creator_earning,
    transition_creator_earning,
    find_creator_earnings,
    get_agent,
    get_agents_by_ids,
    update_agent,
    increment_agent,
)
from .errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError

logger = structlog.get_logger()

CREATOR_CATEGORIES = ["youtube", "twitch", "podcast", "newsletter", "tiktok", "instagram", "other"]
MIN_FOLLOWERS = 1000

# (minimum followers, revenue share), highest first
REVENUE_SHARE_TIERS = [
    (100_000, 0.25),
    (50_000, 0.22),
    (20_000, 0.20),
    (10_000, 0.18),
    (5_000, 0.16),
]
BASE_REVENUE_SHARE = 0.15


def revenue_share_for(follower_count: int) -> float:
    for minimum, share in REVENUE_SHARE_TIERS:
        if follower_count >= minimum:
            return share
    return BASE_REVENUE_SHARE


async def apply_creator(
    agent_id: str,
    category: str,
    follower_count: int,
    social_proof_url: str,
    social_handle: Optional[str] = None,
) -> dict:
    """File a creator application. Each agent may apply once."""
    if not category or not social_proof_url:
        raise ValidationError("Missing required fields: category, follower_count, social_proof_url")
    if category not in CREATOR_CATEGORIES:
        raise ValidationError(f"Invalid category. Valid categories: {', '.join(CREATOR_CATEGORIES)}")
    if follower_count < MIN_FOLLOWERS:
        raise ValidationError("Minimum 1,000 followers required")

    if not await get_agent(agent_id):
        raise NotFoundError("Agent not found")

    existing = await get_creator_for_agent(agent_id)
    if existing:
        raise ConflictError(f"Creator application already exists with status: {existing['status']}")

    creator = SwarmCreator(
        id=f"creator_{uuid.uuid4().hex[:8]}",
        agent_id=agent_id,
        category=category,
        follower_count=follower_count,
        social_proof_url=social_proof_url,
        social_handle=social_handle,
    )
    try:
        await create_creator(creator.model_dump())
    except DuplicateKeyError:
        raise ConflictError("Creator application already exists")

    return await get_creator(creator.id)


async def review_creator(
    creator_id: str,
    approve: bool,
    reviewed_by: str,
    rejection_reason: Optional[str] = None,
) -> dict:
    """Approve or reject a pending application.

    Approval activates the creator, sets its revenue share and marks the
    agent as a creator.
    """
    if not creator_id:
        raise ValidationError("creator_id required")
    current = await get_creator(creator_id)
    if not current:
        raise NotFoundError("Creator not found")

    if not approve:
        creator = await transition_creator(creator_id, [CreatorStatus.PENDING.value], {
            "status": CreatorStatus.REJECTED.value,
            "rejection_reason": rejection_reason or "Not approved",
            "approved_by": reviewed_by,
        })
        if not creator:
            raise ConflictError(f"Creator application already {current['status']}")
        logger.info("creator_rejected", creator_id=creator_id, reviewed_by=reviewed_by)
        return creator

    share = revenue_share_for(current["follower_count"])
    creator = await transition_creator(creator_id, [CreatorStatus.PENDING.value], {
        "status": CreatorStatus.ACTIVE.value,
        "revenue_share": share,
        "approved_at": utcnow(),
        "approved_by": reviewed_by,
    })
    if not creator:
        raise ConflictError(f"Creator application already {current['status']}")

    await update_agent(creator["agent_id"], {
        "is_creator": True,
        "creator_category": creator["category"],
        "creator_revenue_share": share,
        "creator_follower_count": creator["follower_count"],
        "updated_at": utcnow(),
    })
    logger.info("creator_approved", creator_id=creator_id, agent_id=creator["agent_id"], revenue_share=share)
    return creator


async def list_creators(status: Optional[str] = CreatorStatus.PENDING.value) -> list[dict]:
    """Applications with the given status (``all`` or None for every one), newest first."""
    query = {} if status in (None, "all") else {"status": status}
    creators = await find_creators(query, sort=[("onboarded_at", -1), ("id", -1)])
    agents = await get_agents_by_ids({c["agent_id"] for c in creators})
    for creator in creators:
        agent = agents.get(creator["agent_id"], {})
        creator["agent_name"] = agent.get("name", "Unknown")
        creator["wallet_address"] = agent.get("wallet_address")
    return creators


async def get_active_creator(agent_id: str) -> dict:
    creator = await get_creator_for_agent(agent_id)
    if not creator or creator["status"] != CreatorStatus.ACTIVE.value:
        raise PermissionDeniedError("You are not an approved creator")
    return creator


async def record_mission_earning(agent_id: str, mission_id: int, usd_escrowed: float) -> Optional[dict]:
    """Log the revenue share owed for a funded mission.

    Agents that are not active creators earn nothing; None is returned.
    """
    creator = await get_creator_for_agent(agent_id)
    if not creator or creator["status"] != CreatorStatus.ACTIVE.value:
        return None

    amount = round(usd_escrowed * creator["revenue_share"], 2)
    if amount <= 0:
        return None

    earning = CreatorEarning(
        id=f"earn_{uuid.uuid4().hex[:12]}",
        creator_id=creator["id"],
        agent_id=agent_id,
        mission_id=mission_id,
        amount=amount,
        earnings_type="mission_post",
        notes=f"Mission posted: #{mission_id}",
    )
    await create_creator_earning(earning.model_dump())
    return earning.model_dump()


async def pay_creator_earning(earning_id: str, paid_by: str) -> dict:
    """Pay a pending earning into the creator's USD balance."""
    current = await get_creator_earning(earning_id)
    if not current:
        raise NotFoundError("Earning not found")

    earning = await transition_creator_earning(earning_id, EarningStatus.PENDING.value, {
        "status": EarningStatus.PAID.value,
        "paid_at": utcnow(),
    })
    if not earning:
        raise ConflictError(f"Earning already {current['status']}")

    await increment_agent(
        earning["agent_id"],
        {"usd_balance": earning["amount"], "total_earned": earning["amount"]},
        updates={"updated_at": utcnow()},
    )
    logger.info("creator_earning_paid", earning_id=earning_id, amount=earning["amount"], paid_by=paid_by)
    return earning


async def get_creator_earnings() -> dict:
    """Earnings summed per creator."""
    summaries: dict[str, dict] = {}
    for earning in await find_creator_earnings():
        summary = summaries.setdefault(earning["creator_id"], {
            "creator_id": earning["creator_id"],
            "total_earned": 0.0,
            "total_paid": 0.0,
            "pending_payout": 0.0,
            "last_payout_date": None,
            "mission_count": 0,
        })
        summary["total_earned"] += earning["amount"]
        if earning["status"] == EarningStatus.PAID.value:
            summary["total_paid"] += earning["amount"]
            paid_at = earning.get("paid_at")
            if paid_at and (not summary["last_payout_date"] or paid_at > summary["last_payout_date"]):
                summary["last_payout_date"] = paid_at
        else:
            summary["pending_payout"] += earning["amount"]
        if earning.get("mission_id"):
            summary["mission_count"] += 1

    for summary in summaries.values():
        for key in ("total_earned", "total_paid", "pending_payout"):
            summary[key] = round(summary[key], 2)

    return {"earnings": summaries, "total_creators": len(summaries)}
