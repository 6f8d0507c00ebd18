"""Agent registration, sign-in and public profiles."""

import random
import re
import string
import uuid
from typing import Optional
import structlog

from .models import SwarmAgent, XPTransaction, utcnow
from .db import (
    create_agent,
    get_agent,
    get_agent_by_wallet,
    get_agent_by_referral_code,
    update_agent,
    increment_agent,
    find_agents,
    count_agents,
    sum_agent_field,
    create_xp_transaction,
)
from .auth import verify_challenge, create_session_token, normalize_wallet, short_wallet
from .config import get_settings
from .errors import NotFoundError, ValidationError, ConflictError

logger = structlog.get_logger()

LEADERBOARD_FIELDS = [
    "id", "name", "tagline", "avatar_url", "xp", "rank_title",
    "missions_completed", "is_founding_swarm", "referral_count",
    "created_at", "wallet_address",
]

PROFILE_FIELDS = LEADERBOARD_FIELDS + [
    "youtube_channel_id", "youtube_channel_name", "youtube_subscribers",
    "youtube_verified_at", "trust_tier", "referral_code",
    "usd_balance", "total_earned", "total_withdrawn",
]

ADMIN_LIST_FIELDS = [
    "id", "name", "xp", "rank_title", "trust_tier", "missions_completed",
    "is_verified", "created_at", "wallet_address",
]


class RegistrationRequired(NotFoundError):
    """Wallet is verified but has no agent yet."""


def _pick(agent: dict, fields: list[str]) -> dict:
    return {f: agent.get(f) for f in fields}


def make_referral_code(name: str) -> str:
    """Referral code of the form NAME-AB12."""
    clean = re.sub(r"[^a-zA-Z0-9]", "", name)[:4].upper()
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"{clean}-{suffix}"


def session_payload(agent: dict) -> dict:
    """Public agent fields returned alongside a session."""
    return {
        "id": agent["id"],
        "name": agent["name"],
        "tagline": agent.get("tagline", ""),
        "xp": agent.get("xp", 0),
        "rank_title": agent.get("rank_title"),
        "referral_code": agent.get("referral_code"),
        "is_founding_swarm": agent.get("is_founding_swarm", False),
        "missions_completed": agent.get("missions_completed", 0),
    }


def _session_for(agent: dict) -> dict:
    role = "admin" if agent.get("trust_tier") == "admin" else "agent"
    return {
        "token": create_session_token(agent["id"], agent["wallet_address"], agent["name"], role),
        "expires_in": get_settings().session_expiry_seconds,
    }


async def register_agent(
    wallet: str,
    name: str,
    tagline: str = "",
    description: str = "",
    framework: Optional[str] = None,
    referral_code: Optional[str] = None,
) -> dict:
    """Create an agent with the genesis XP bonus and credit its referrer."""
    settings = get_settings()
    wallet = normalize_wallet(wallet)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Agent name is required")

    if await get_agent_by_wallet(wallet):
        raise ConflictError("Wallet address is already registered")

    referrer = await get_agent_by_referral_code(referral_code) if referral_code else None

    agent = SwarmAgent(
        id=f"agent_{uuid.uuid4().hex[:8]}",
        wallet_address=wallet,
        name=name,
        tagline=tagline or "",
        description=description or "",
        framework=framework or "openclaw",
        xp=settings.genesis_bonus_xp,
        referral_code=make_referral_code(name),
        referred_by=referrer["id"] if referrer else None,
    )
    await create_agent(agent.model_dump())

    await create_xp_transaction(XPTransaction(
        agent_id=agent.id,
        amount=settings.genesis_bonus_xp,
        action="genesis_bonus",
        description="Genesis Phase Welcome Bonus",
    ).model_dump())

    if referrer:
        await increment_agent(
            referrer["id"],
            {"xp": settings.referral_bonus_xp, "referral_count": 1},
            updates={"updated_at": utcnow()},
        )
        await create_xp_transaction(XPTransaction(
            agent_id=referrer["id"],
            amount=settings.referral_bonus_xp,
            action="referral",
            description=f"Referred {name}",
        ).model_dump())
        logger.info("referral_credited", referrer_id=referrer["id"], agent_id=agent.id)

    logger.info("agent_registered", agent_id=agent.id, wallet=short_wallet(wallet))
    return await get_agent(agent.id)


async def authenticate_cli(
    wallet: str,
    signature: str,
    message: str,
    name: Optional[str] = None,
    tagline: Optional[str] = None,
    description: Optional[str] = None,
    framework: Optional[str] = None,
    referral_code: Optional[str] = None,
) -> dict:
    """Sign in (or register) a wallet that signed a challenge.

    Returns:
        ``action`` ("authenticated" or "registered"), the agent summary and
        a session token

    Raises:
        RegistrationRequired: the wallet is unknown and no name was given
    """
    wallet = verify_challenge(wallet, signature, message)

    existing = await get_agent_by_wallet(wallet)
    if existing:
        logger.info("agent_authenticated", agent_id=existing["id"])
        return {
            "action": "authenticated",
            "agent": session_payload(existing),
            "session": _session_for(existing),
        }

    if not name:
        raise RegistrationRequired("Agent not found. Provide name, tagline, and description to register.")

    agent = await register_agent(
        wallet,
        name,
        tagline=tagline or "",
        description=description or "",
        framework=framework,
        referral_code=referral_code,
    )
    return {
        "action": "registered",
        "agent": session_payload(agent),
        "session": _session_for(agent),
    }


async def login_wallet(wallet: str) -> dict:
    """Look up an agent by wallet and issue a session token (CLI login)."""
    wallet = normalize_wallet(wallet)
    agent = await get_agent_by_wallet(wallet)
    if not agent:
        raise NotFoundError("Agent not found. Register first with a signed challenge.")
    return {"agent": agent, "token": _session_for(agent)["token"]}


async def get_leaderboard(limit: Optional[int] = None) -> dict:
    """Agents ranked by XP, highest first."""
    if limit is None:
        limit = get_settings().leaderboard_default_limit
    if limit < 1:
        raise ValidationError("limit must be positive")

    agents = await find_agents(sort=[("xp", -1), ("created_at", 1)], limit=limit)
    leaderboard = [
        {"rank": i + 1, **_pick(a, LEADERBOARD_FIELDS), "is_top_10": i < 10}
        for i, a in enumerate(agents)
    ]

    stats = {
        "total_agents": await count_agents(),
        "total_xp": await sum_agent_field("xp"),
    }
    return {"leaderboard": leaderboard, "stats": stats}


async def get_profile(wallet: Optional[str]) -> dict:
    if not wallet:
        raise ValidationError("Wallet address required")
    agent = await get_agent_by_wallet(wallet)
    if not agent:
        raise NotFoundError("Agent not found")
    return _pick(agent, PROFILE_FIELDS)


async def update_wallet(
    agent_id: str,
    new_wallet: str,
    signature: str,
    message: str,
    old_wallet: Optional[str] = None,
) -> dict:
    """Move an agent to a new wallet. The new wallet must sign a challenge."""
    if not agent_id:
        raise ValidationError("agent_id, new_wallet_address, signature, and message are required")
    new_wallet = verify_challenge(new_wallet, signature, message)

    agent = await get_agent(agent_id)
    if not agent:
        raise NotFoundError("Agent not found")

    if old_wallet and agent["wallet_address"] != old_wallet.lower():
        raise ValidationError("Old wallet address does not match current wallet")

    if await get_agent_by_wallet(new_wallet):
        raise ConflictError("New wallet address is already registered to another agent")

    await update_agent(agent_id, {"wallet_address": new_wallet, "updated_at": utcnow()})

    logger.info(
        "agent_wallet_updated",
        agent_id=agent_id,
        old_wallet=short_wallet(agent["wallet_address"]),
        new_wallet=short_wallet(new_wallet),
    )

    return {
        "message": f"Wallet updated for agent {agent['name']}",
        "agent_id": agent_id,
        "old_wallet": agent["wallet_address"][:8] + "...",
        "new_wallet": new_wallet[:8] + "...",
    }


async def list_agents_page(page: int = 1) -> dict:
    """Admin listing, by XP."""
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    page_size = get_settings().admin_page_size
    agents = await find_agents(
        sort=[("xp", -1)],
        skip=(page - 1) * page_size,
        limit=page_size,
    )
    return {
        "agents": [_pick(a, ADMIN_LIST_FIELDS) for a in agents],
        "total": await count_agents(),
        "page": page,
        "page_size": page_size,
    }
