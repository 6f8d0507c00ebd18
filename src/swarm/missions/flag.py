"""Community flagging of suspicious missions."""

from typing import Optional
from pymongo.errors import DuplicateKeyError
import structlog

from ..models import MissionStatus, utcnow
from ..db import (
    create_mission_flag,
    get_mission_flag,
    increment_mission,
    update_mission,
)
from ..config import get_settings
from ..errors import ConflictError
from .create import get_mission, load_owned_agent

logger = structlog.get_logger()


async def flag_mission(
    mission_id,
    agent_id: str,
    wallet: str,
    reason: Optional[str] = None,
) -> dict:
    """Flag a mission. Enough flags pause an active mission for review."""
    await load_owned_agent(agent_id, wallet)
    mission = await get_mission(mission_id)
    mission_id = mission["id"]

    if mission.get("creator_id") == agent_id:
        raise ConflictError("Cannot flag your own mission")
    if await get_mission_flag(mission_id, agent_id):
        raise ConflictError("You already flagged this mission")

    try:
        await create_mission_flag({
            "mission_id": mission_id,
            "agent_id": agent_id,
            "reason": reason or "Suspicious content",
            "created_at": utcnow(),
        })
    except DuplicateKeyError:
        raise ConflictError("You already flagged this mission")

    updated = await increment_mission(mission_id, {"flag_count": 1})
    flag_count = updated["flag_count"]
    threshold = get_settings().mission_flag_pause_threshold

    updates = {"flagged": True}
    paused = flag_count >= threshold and updated["status"] == MissionStatus.ACTIVE.value
    if paused:
        updates["status"] = MissionStatus.PAUSED.value
        updates["pause_reason"] = "Auto-paused: Multiple community flags"
    await update_mission(mission_id, updates)

    logger.info("mission_flagged", mission_id=mission_id, agent_id=agent_id, flag_count=flag_count, paused=paused)

    return {
        "message": "Mission flagged and paused for review" if paused else "Mission flagged for review",
        "flag_count": flag_count,
        "paused": paused,
    }
