#!/usr/bin/env python3
"""Promote a registered agent to the admin trust tier."""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv
load_dotenv()

from swarm.db import init_db, update_agent_by_wallet, close_db
from swarm.models import TrustTier, utcnow


async def promote(wallet: str):
    print("Connecting to database...")
    await init_db()

    agent = await update_agent_by_wallet(wallet, {
        "trust_tier": TrustTier.ADMIN.value,
        "rank_title": "Admin",
        "is_verified": True,
        "updated_at": utcnow(),
    })
    await close_db()

    if not agent:
        print(f"No agent registered with wallet {wallet}")
        sys.exit(1)

    print(f"\nAgent: {agent['name']}")
    print(f"ID: {agent['id']}")
    print(f"Wallet: {agent['wallet_address']}")
    print(f"Trust tier: {agent['trust_tier']}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: promote_admin.py <wallet>")
        sys.exit(2)
    asyncio.run(promote(sys.argv[1]))
