"""Reserving a mission slot for an agent."""

from pymongo.errors import DuplicateKeyError
import structlog

from ..models import SwarmClaim, ClaimStatus, MissionStatus, MissionType
from ..db import create_claim, get_claim_for_agent, next_sequence, get_claim, increment_mission
from ..trust import is_banned
from ..errors import ConflictError, PermissionDeniedError
from .create import get_mission, load_owned_agent

logger = structlog.get_logger()


async def take_slot(mission: dict) -> None:
    """Hold one of the mission's ``max_claims`` slots.

    Every open or verified claim holds a slot, so the number of claims that
    can ever be paid never exceeds what the creator escrowed.
    """
    max_claims = mission.get("max_claims", 1)
    taken = await increment_mission(
        mission["id"],
        {"reserved_claims": 1},
        conditions={
            "status": MissionStatus.ACTIVE.value,
            "reserved_claims": {"$lt": max_claims},
        },
    )
    if not taken:
        raise ConflictError("Mission is full")


async def release_slot(mission_id: int) -> None:
    """Give a rejected claim's slot back to the mission."""
    await increment_mission(mission_id, {"reserved_claims": -1}, conditions={"reserved_claims": {"$gt": 0}})


async def reserve_mission(mission_id, agent_id: str, wallet: str, outreach: bool = False) -> dict:
    """Claim a mission slot. The agent then has to submit proof.

    Outreach missions are only reserved through the outreach flow, which
    passes ``outreach=True``.

    Returns:
        The new ``pending`` claim, staking the mission's XP reward
    """
    agent = await load_owned_agent(agent_id, wallet)
    if is_banned(agent):
        logger.warning("banned_agent_refused", agent_id=agent_id, action="reserve")
        raise PermissionDeniedError("Agent is banned")

    mission = await get_mission(mission_id)

    is_outreach = mission.get("type") == MissionType.OUTREACH.value
    if is_outreach and not outreach:
        raise ConflictError("Outreach missions are claimed through /api/missions/outreach")
    if outreach and not is_outreach:
        raise ConflictError("Not an outreach mission")
    if mission.get("creator_id") == agent_id:
        raise ConflictError("Cannot claim your own mission")
    if mission["status"] != MissionStatus.ACTIVE.value:
        raise ConflictError("Mission is not active")
    if mission.get("current_claims", 0) >= mission.get("max_claims", 1):
        raise ConflictError("Mission is already complete")

    if await get_claim_for_agent(mission["id"], agent_id):
        raise ConflictError("You have already claimed this mission")

    await take_slot(mission)

    claim = SwarmClaim(
        id=await next_sequence("claims"),
        mission_id=mission["id"],
        agent_id=agent_id,
        status=ClaimStatus.PENDING,
        staked_xp=mission.get("xp_reward", 0),
    )
    try:
        await create_claim(claim.model_dump())
    except DuplicateKeyError:
        await release_slot(mission["id"])
        raise ConflictError("You have already claimed this mission")

    logger.info("mission_reserved", mission_id=mission["id"], agent_id=agent_id, claim_id=claim.id)
    return await get_claim(claim.id)
