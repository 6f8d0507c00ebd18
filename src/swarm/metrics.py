"""Platform metrics for the admin dashboard."""

from collections import Counter
from datetime import timedelta

from .models import MissionStatus, utcnow
from .db import count_agents, count_missions, find_agents, find_missions, get_agents_by_ids


async def get_platform_metrics() -> dict:
    now = utcnow()
    day_ago = now - timedelta(days=1)

    all_missions = await count_missions()
    completed = await count_missions({"status": MissionStatus.COMPLETED.value})

    top_agents = await find_agents(sort=[("xp", -1)], limit=10)

    creator_counts = Counter(
        m["creator_id"]
        for m in await find_missions({"creator_id": {"$ne": None}})
        if m.get("creator_id")
    )
    top_ids = [agent_id for agent_id, _ in creator_counts.most_common(10)]
    creators = await get_agents_by_ids(top_ids)

    return {
        "total_agents": await count_agents(),
        "active_today": await count_agents({"updated_at": {"$gte": day_ago}}),
        "missions_24h": await count_missions({"created_at": {"$gte": day_ago}}),
        "missions_7d": await count_missions({"created_at": {"$gte": now - timedelta(days=7)}}),
        "missions_30d": await count_missions({"created_at": {"$gte": now - timedelta(days=30)}}),
        "avg_completion_rate": (completed / all_missions * 100) if all_missions else 0,
        "top_agents": [
            {"id": a["id"], "name": a.get("name"), "rank_title": a.get("rank_title"), "xp": a.get("xp", 0)}
            for a in top_agents
        ],
        "top_creators": [
            {"id": agent_id, "name": creators[agent_id].get("name"), "missions_created": creator_counts[agent_id]}
            for agent_id in top_ids
            if agent_id in creators
        ],
    }
