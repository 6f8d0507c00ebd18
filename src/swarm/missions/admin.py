"""Admin mission monitoring."""

from typing import Optional
import structlog

from ..models import MissionStatus, utcnow
from ..db import find_missions, update_mission, get_agents_by_ids
from ..errors import NotFoundError, ValidationError
from .create import parse_mission_id

logger = structlog.get_logger()

ADMIN_FIELDS = [
    "id", "title", "type", "creator_id", "status", "target_url",
    "current_claims", "max_claims", "xp_reward", "created_at",
    "stake_required", "is_featured", "flag_count", "pause_reason",
]

FEATURED_PRIORITY = 100


async def list_missions_admin(status: Optional[str] = None) -> list[dict]:
    """All missions (or one status), newest first, with creator names."""
    query = {}
    if status and status != "all":
        query["status"] = status
    missions = await find_missions(query, sort=[("created_at", -1), ("id", -1)])

    creators = await get_agents_by_ids({m["creator_id"] for m in missions if m.get("creator_id")})
    return [
        {
            **{f: m.get(f) for f in ADMIN_FIELDS},
            "creator_name": creators.get(m.get("creator_id"), {}).get("name", "Unknown"),
        }
        for m in missions
    ]


async def set_mission_status(mission_id, status: str) -> None:
    valid = [s.value for s in MissionStatus]
    if status not in valid:
        raise ValidationError(f"Invalid status '{status}'. Must be one of: {', '.join(valid)}")

    mission_id = parse_mission_id(mission_id)
    updates = {"status": status}
    if status == MissionStatus.COMPLETED.value:
        updates["completed_at"] = utcnow()
    if status == MissionStatus.ACTIVE.value:
        updates["pause_reason"] = None

    if not await update_mission(mission_id, updates):
        raise NotFoundError(f"Mission {mission_id} not found")
    logger.info("mission_status_set", mission_id=mission_id, status=status)


async def feature_mission(mission_id) -> None:
    mission_id = parse_mission_id(mission_id)
    if not await update_mission(mission_id, {"is_featured": True, "priority": FEATURED_PRIORITY}):
        raise NotFoundError(f"Mission {mission_id} not found")
    logger.info("mission_featured", mission_id=mission_id)
