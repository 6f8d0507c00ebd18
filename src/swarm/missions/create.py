"""Mission creation, lookup and listing."""

from typing import Optional
import structlog

from ..models import SwarmMission, MissionType, MissionStatus, XPTransaction
from ..db import (
    create_mission as db_create_mission,
    get_mission as db_get_mission,
    get_agent,
    increment_agent,
    find_missions,
    next_sequence,
    create_xp_transaction,
)
from ..security import check_mission_content
from ..creators import record_mission_earning
from ..errors import NotFoundError, PermissionDeniedError, ValidationError

logger = structlog.get_logger()

VALID_TYPES = [t.value for t in MissionType if t != MissionType.OUTREACH]

SORTS = {
    "priority": [("priority", -1), ("created_at", -1), ("id", -1)],
    "xp": [("xp_reward", -1), ("created_at", -1), ("id", -1)],
    "reward": [("usd_reward", -1), ("xp_reward", -1), ("created_at", -1), ("id", -1)],
    "newest": [("created_at", -1), ("id", -1)],
}


def parse_mission_id(value) -> int:
    """Mission ids are integers; anything else is a validation error."""
    if isinstance(value, bool):
        raise ValidationError(f"Invalid mission id: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip() if value is not None else ""
    if not text.isdigit():
        raise ValidationError(f"Invalid mission id: {value!r}")
    return int(text)


async def load_owned_agent(agent_id: str, wallet: str) -> dict:
    """Fetch an agent and check the caller's wallet owns it."""
    if not agent_id or not wallet:
        raise ValidationError("agent_id and wallet_address required")
    agent = await get_agent(agent_id)
    if not agent or agent.get("wallet_address") != wallet.lower():
        raise PermissionDeniedError("Agent not found or wallet mismatch")
    return agent


async def get_mission(mission_id) -> dict:
    mission_id = parse_mission_id(mission_id)
    mission = await db_get_mission(mission_id)
    if not mission:
        raise NotFoundError(f"Mission {mission_id} not found")
    return mission


async def list_missions(
    status: str = MissionStatus.ACTIVE.value,
    type: Optional[str] = None,
    limit: int = 50,
    sort: str = "priority",
) -> list[dict]:
    """Missions with the given status, sorted in the database.

    ``sort`` is one of ``priority`` (highest priority, then newest), ``xp``,
    ``reward`` (USD, then XP) or ``newest``.
    """
    if sort not in SORTS:
        raise ValidationError(f"Invalid sort. Valid sorts: {', '.join(SORTS)}")
    query = {"status": status}
    if type:
        query["type"] = type
    return await find_missions(query, sort=SORTS[sort], limit=limit)


async def escrow_funds(agent: dict, xp_cost: int, usd_cost: float) -> None:
    """Debit a creator's XP and USD escrow in one conditional write.

    Nothing is taken unless the agent holds both amounts at write time.
    """
    usd_cost = round(usd_cost, 2)
    xp_have = agent.get("xp", 0) or 0
    usd_have = agent.get("usd_balance", 0) or 0
    if xp_have < xp_cost:
        raise ValidationError(f"Insufficient XP. Need {xp_cost}, have {xp_have}")
    if usd_have < usd_cost:
        raise ValidationError(f"Insufficient USD balance. Need ${usd_cost:.2f}, have ${usd_have:.2f}")
    if not xp_cost and not usd_cost:
        return

    debited = await increment_agent(
        agent["id"],
        {"xp": -xp_cost, "usd_balance": -usd_cost},
        conditions={"xp": {"$gte": xp_cost}, "usd_balance": {"$gte": usd_cost}},
    )
    if not debited:
        raise ValidationError(f"Insufficient funds. Need {xp_cost} XP and ${usd_cost:.2f}")


async def create_mission(
    agent_id: str,
    wallet: str,
    type: str,
    target_url: str,
    title: Optional[str] = None,
    target_name: Optional[str] = None,
    instructions: Optional[str] = None,
    max_claims: int = 1,
    target_hours: int = 0,
    xp_reward: int = 10,
    usd_reward: float = 0.0,
) -> dict:
    """Create a mission and escrow its rewards from the creator.

    The creator pays ``max_claims * xp_reward`` XP and
    ``max_claims * usd_reward`` USD up front, so every payout the mission
    can make is already funded. The deduction only succeeds while the
    creator still holds both amounts.

    Returns:
        The created mission and the XP and USD deducted
    """
    if not type or not target_url:
        raise ValidationError("agent_id, wallet_address, mission_type, and target_url required")
    if type not in VALID_TYPES:
        raise ValidationError(f"Invalid mission_type. Valid types: {', '.join(VALID_TYPES)}")
    if max_claims < 1:
        raise ValidationError("max_claims must be at least 1")
    if xp_reward < 0 or usd_reward < 0:
        raise ValidationError("Rewards cannot be negative")

    title = title or target_name or type.replace("_", " ").title()
    check = check_mission_content(title, instructions, target_url)
    if check.blocked:
        logger.warning("mission_content_blocked", agent_id=agent_id, reasons=check.reasons)
        raise ValidationError(f"Mission blocked: {', '.join(check.reasons)}")

    agent = await load_owned_agent(agent_id, wallet)
    xp_cost = max_claims * xp_reward
    usd_cost = round(max_claims * usd_reward, 2)
    await escrow_funds(agent, xp_cost, usd_cost)

    mission = SwarmMission(
        id=await next_sequence("missions"),
        title=title,
        type=type,
        creator_id=agent_id,
        target_url=target_url,
        target_name=target_name,
        instructions=instructions,
        target_hours=target_hours,
        max_claims=max_claims,
        xp_reward=xp_reward,
        usd_reward=usd_reward,
        xp_cost=xp_cost,
        usd_escrowed=usd_cost,
        stake_required=xp_reward,
    )
    await db_create_mission(mission.model_dump())

    if xp_cost:
        await create_xp_transaction(XPTransaction(
            agent_id=agent_id,
            amount=-xp_cost,
            action="escrow",
            description=f"XP escrowed for mission: {type}",
            mission_id=mission.id,
        ).model_dump())

    logger.info("mission_escrowed", mission_id=mission.id, agent_id=agent_id, xp_cost=xp_cost, usd_cost=usd_cost)

    if usd_cost:
        await record_mission_earning(agent_id, mission.id, usd_cost)

    return {
        "mission": await db_get_mission(mission.id),
        "xp_deducted": xp_cost,
        "usd_deducted": usd_cost,
    }
