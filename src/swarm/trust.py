"""Trust tiers, fraud flags and audit rates.

Tiers, from least to most restricted:

    trusted -> normal -> probation -> blacklist -> banned

Rejected claims add fraud flags; flags push the tier down the list and
never back up. Admins are outside the ladder and only change tier
through an explicit override.
"""

from typing import Optional
import structlog

from .models import TrustTier, TrustChange, utcnow
from .db import (
    get_agent,
    update_agent,
    increment_agent,
    find_agents,
    create_trust_change,
    get_trust_history as db_get_trust_history,
)
from .errors import NotFoundError, ValidationError

logger = structlog.get_logger()

# Percent of proof submissions selected for manual audit
AUDIT_RATES = {
    TrustTier.TRUSTED.value: 5,
    TrustTier.NORMAL.value: 10,
    TrustTier.PROBATION.value: 50,
    TrustTier.BLACKLIST.value: 100,
    TrustTier.BANNED.value: 100,
}
UNKNOWN_TIER_AUDIT_RATE = 50

_SEVERITY = {
    TrustTier.TRUSTED.value: 0,
    TrustTier.NORMAL.value: 0,
    TrustTier.PROBATION.value: 1,
    TrustTier.BLACKLIST.value: 2,
    TrustTier.BANNED.value: 3,
}

FLAGGED_TIERS = [
    TrustTier.PROBATION.value,
    TrustTier.BLACKLIST.value,
    TrustTier.BANNED.value,
]


def _tier_value(tier) -> str:
    if isinstance(tier, TrustTier):
        return tier.value
    return tier or TrustTier.NORMAL.value


def tier_for_flags(fraud_flags: int, current_tier: Optional[str] = None) -> str:
    """Return the tier an agent should hold with ``fraud_flags`` flags.

    >=3 flags banned, >=2 blacklist, >=1 probation. Admins keep their
    tier, and the result is never less severe than ``current_tier``.
    """
    current = _tier_value(current_tier)
    if current == TrustTier.ADMIN.value:
        return current

    if fraud_flags >= 3:
        target = TrustTier.BANNED.value
    elif fraud_flags >= 2:
        target = TrustTier.BLACKLIST.value
    elif fraud_flags >= 1:
        target = TrustTier.PROBATION.value
    else:
        return current

    if _SEVERITY.get(target, 0) > _SEVERITY.get(current, 0):
        return target
    return current


def audit_rate(tier: Optional[str]) -> int:
    """Percent chance a submission from this tier goes to manual audit."""
    return AUDIT_RATES.get(_tier_value(tier), UNKNOWN_TIER_AUDIT_RATE)


def is_banned(agent: dict) -> bool:
    return agent.get("trust_tier") == TrustTier.BANNED.value


def is_admin_tier(agent: dict) -> bool:
    return agent.get("trust_tier") == TrustTier.ADMIN.value


async def _log_change(
    agent: dict,
    previous_tier: str,
    new_tier: str,
    reason: str,
    changed_by: str,
) -> None:
    change = TrustChange(
        agent_id=agent["id"],
        agent_name=agent.get("name", ""),
        previous_tier=previous_tier,
        new_tier=new_tier,
        fraud_flags=agent.get("fraud_flags", 0),
        reason=reason,
        changed_by=changed_by,
    )
    await create_trust_change(change.model_dump())

    logger.info(
        "trust_tier_changed",
        agent_id=agent["id"],
        previous_tier=previous_tier,
        new_tier=new_tier,
        changed_by=changed_by,
    )


async def record_fraud_flag(
    agent_id: str,
    reason: str,
    claim_id: Optional[int] = None,
) -> dict:
    """Add one fraud flag to an agent and escalate its tier.

    The increment is atomic. The tier write only applies while the flag
    count is still the one we produced, so a concurrent flag that lands in
    between decides the tier instead.

    Returns:
        The agent after the update
    """
    agent = await increment_agent(
        agent_id,
        {"fraud_flags": 1},
        updates={"updated_at": utcnow()},
    )
    if not agent:
        raise NotFoundError(f"Agent {agent_id} not found")

    flags = agent["fraud_flags"]
    previous_tier = _tier_value(agent.get("trust_tier"))
    new_tier = tier_for_flags(flags, previous_tier)

    logger.warning(
        "fraud_flag_recorded",
        agent_id=agent_id,
        fraud_flags=flags,
        claim_id=claim_id,
    )

    if new_tier != previous_tier:
        applied = await update_agent(
            agent_id,
            {"trust_tier": new_tier},
            conditions={"fraud_flags": flags},
        )
        if applied:
            agent["trust_tier"] = new_tier
            note = f"{reason} (claim #{claim_id})" if claim_id is not None else reason
            await _log_change(agent, previous_tier, new_tier, note, "system")

    return agent


async def change_trust_tier(
    agent_id: str,
    new_tier: str,
    reason: str,
    changed_by: str,
) -> dict:
    """Set an agent's tier directly (admin override)."""
    valid = [t.value for t in TrustTier]
    if new_tier not in valid:
        raise ValidationError(f"Invalid trust tier '{new_tier}'. Must be one of: {', '.join(valid)}")
    if not reason:
        raise ValidationError("Reason required for trust tier change")

    agent = await get_agent(agent_id)
    if not agent:
        raise NotFoundError(f"Agent {agent_id} not found")

    previous_tier = _tier_value(agent.get("trust_tier"))
    await update_agent(agent_id, {"trust_tier": new_tier, "updated_at": utcnow()})
    agent["trust_tier"] = new_tier

    if new_tier != previous_tier:
        await _log_change(agent, previous_tier, new_tier, reason, changed_by)

    return agent


async def list_flagged_agents() -> list[dict]:
    """Agents on probation, blacklisted or banned, most flags first."""
    agents = await find_agents(
        {"trust_tier": {"$in": FLAGGED_TIERS}},
        sort=[("fraud_flags", -1), ("xp", -1)],
    )
    return [
        {
            "id": a["id"],
            "name": a.get("name"),
            "wallet_address": a.get("wallet_address"),
            "trust_tier": a.get("trust_tier"),
            "fraud_flags": a.get("fraud_flags", 0),
            "xp": a.get("xp", 0),
            "missions_completed": a.get("missions_completed", 0),
            "audit_rate": audit_rate(a.get("trust_tier")),
        }
        for a in agents
    ]


async def get_trust_history(limit: int = 50) -> list[dict]:
    return await db_get_trust_history(limit=limit)
