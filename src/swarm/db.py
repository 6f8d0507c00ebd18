"""MongoDB database operations for The Swarm."""

from typing import Optional, Any
from datetime import datetime
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo import ReturnDocument
import structlog

from .config import get_settings

logger = structlog.get_logger()

# Global client
_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


def serialize_doc(doc: dict) -> dict:
    """Convert MongoDB document to JSON-serializable dict."""
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        if key == "_id":
            continue
        if isinstance(value, ObjectId):
            result[key] = str(value)
        elif isinstance(value, datetime):
            result[key] = value.isoformat()
        elif isinstance(value, dict):
            result[key] = serialize_doc(value)
        elif isinstance(value, list):
            result[key] = [
                serialize_doc(v) if isinstance(v, dict)
                else str(v) if isinstance(v, ObjectId)
                else v.isoformat() if isinstance(v, datetime)
                else v
                for v in value
            ]
        else:
            result[key] = value
    return result


async def get_db() -> AsyncIOMotorDatabase:
    """Get database connection."""
    global _client, _db

    if _db is None:
        settings = get_settings()
        _client = AsyncIOMotorClient(settings.mongodb_uri)
        _db = _client[settings.mongodb_database]
        logger.info("mongodb_connected", database=settings.mongodb_database)

    return _db


async def get_collection(name: str) -> AsyncIOMotorCollection:
    """Get a collection by name."""
    db = await get_db()
    return db[name]


async def close_db():
    """Close database connection."""
    global _client, _db
    if _client:
        _client.close()
        _client = None
        _db = None
        logger.info("mongodb_disconnected")


async def _collect(cursor) -> list[dict]:
    docs = []
    async for doc in cursor:
        docs.append(serialize_doc(doc))
    return docs


# ============================================================
# Collection Names
# ============================================================

AGENTS_COLLECTION = "agents"
MISSIONS_COLLECTION = "missions"
CLAIMS_COLLECTION = "claims"
XP_TRANSACTIONS_COLLECTION = "xp_transactions"
TRUST_HISTORY_COLLECTION = "trust_history"
WITHDRAWALS_COLLECTION = "withdrawals"
MISSION_FLAGS_COLLECTION = "mission_flags"
COUNTERS_COLLECTION = "counters"
CREATORS_COLLECTION = "creators"
CREATOR_EARNINGS_COLLECTION = "creator_earnings"
OUTREACH_PROOFS_COLLECTION = "outreach_proofs"


async def next_sequence(name: str) -> int:
    """Atomically issue the next integer id for a sequence."""
    collection = await get_collection(COUNTERS_COLLECTION)
    doc = await collection.find_one_and_update(
        {"name": name},
        {"$inc": {"value": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return doc["value"]


# ============================================================
# Agent Operations
# ============================================================

async def create_agent(agent_data: dict) -> str:
    """Create a new agent. Returns agent id."""
    collection = await get_collection(AGENTS_COLLECTION)
    await collection.insert_one(agent_data)
    logger.info("agent_created", agent_id=agent_data["id"])
    return agent_data["id"]


async def get_agent(agent_id: str) -> Optional[dict]:
    """Get agent by ID."""
    collection = await get_collection(AGENTS_COLLECTION)
    doc = await collection.find_one({"id": agent_id})
    return serialize_doc(doc) if doc else None


async def get_agent_by_wallet(wallet_address: str) -> Optional[dict]:
    """Get agent by wallet address. Wallets are stored lower-cased."""
    collection = await get_collection(AGENTS_COLLECTION)
    doc = await collection.find_one({"wallet_address": wallet_address.lower()})
    return serialize_doc(doc) if doc else None


async def get_agent_by_referral_code(referral_code: str) -> Optional[dict]:
    collection = await get_collection(AGENTS_COLLECTION)
    doc = await collection.find_one({"referral_code": referral_code})
    return serialize_doc(doc) if doc else None


async def update_agent(agent_id: str, updates: dict, conditions: Optional[dict] = None) -> bool:
    """Update agent fields. Returns True when an agent matched."""
    collection = await get_collection(AGENTS_COLLECTION)
    query = {"id": agent_id}
    if conditions:
        query.update(conditions)
    result = await collection.update_one(query, {"$set": updates})
    return result.matched_count > 0


async def update_agent_by_wallet(wallet_address: str, updates: dict) -> Optional[dict]:
    """Update agent fields by wallet. Returns the updated agent."""
    collection = await get_collection(AGENTS_COLLECTION)
    doc = await collection.find_one_and_update(
        {"wallet_address": wallet_address.lower()},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc) if doc else None


async def increment_agent(
    agent_id: str,
    increments: dict,
    updates: Optional[dict] = None,
    conditions: Optional[dict] = None,
) -> Optional[dict]:
    """Atomically apply $inc (and optional $set) to an agent.

    ``conditions`` are extra filter terms; when they do not hold nothing is
    written and None is returned. Returns the agent after the update.
    """
    collection = await get_collection(AGENTS_COLLECTION)
    query = {"id": agent_id}
    if conditions:
        query.update(conditions)
    update: dict[str, Any] = {"$inc": increments}
    if updates:
        update["$set"] = updates
    doc = await collection.find_one_and_update(
        query,
        update,
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc) if doc else None


async def find_agents(
    query: Optional[dict] = None,
    sort: Optional[list] = None,
    skip: int = 0,
    limit: int = 0,
) -> list[dict]:
    """Find agents matching a filter."""
    collection = await get_collection(AGENTS_COLLECTION)
    cursor = collection.find(query or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return await _collect(cursor)


async def get_agents_by_ids(agent_ids: list[str]) -> dict[str, dict]:
    """Get agents keyed by id."""
    if not agent_ids:
        return {}
    agents = await find_agents({"id": {"$in": list(agent_ids)}})
    return {a["id"]: a for a in agents}


async def count_agents(query: Optional[dict] = None) -> int:
    collection = await get_collection(AGENTS_COLLECTION)
    return await collection.count_documents(query or {})


async def sum_agent_field(field: str, query: Optional[dict] = None) -> float:
    """Sum a numeric agent field server-side."""
    collection = await get_collection(AGENTS_COLLECTION)
    pipeline = [
        {"$match": query or {}},
        {"$group": {"_id": None, "total": {"$sum": f"${field}"}}},
    ]
    results = await collection.aggregate(pipeline).to_list(length=1)
    return results[0]["total"] if results else 0


# ============================================================
# Mission Operations
# ============================================================

async def create_mission(mission_data: dict) -> int:
    """Create a new mission. Returns mission id."""
    collection = await get_collection(MISSIONS_COLLECTION)
    await collection.insert_one(mission_data)
    logger.info("mission_created", mission_id=mission_data["id"])
    return mission_data["id"]


async def get_mission(mission_id: int) -> Optional[dict]:
    """Get mission by ID."""
    collection = await get_collection(MISSIONS_COLLECTION)
    doc = await collection.find_one({"id": mission_id})
    return serialize_doc(doc) if doc else None


async def update_mission(mission_id: int, updates: dict) -> bool:
    """Update mission fields. Returns True when the mission exists."""
    collection = await get_collection(MISSIONS_COLLECTION)
    result = await collection.update_one(
        {"id": mission_id},
        {"$set": updates}
    )
    return result.matched_count > 0


async def increment_mission(
    mission_id: int,
    increments: dict,
    conditions: Optional[dict] = None,
) -> Optional[dict]:
    """Atomically apply $inc to a mission.

    Like ``increment_agent``, nothing is written when ``conditions`` do not
    hold. Returns the mission after the update, or None.
    """
    collection = await get_collection(MISSIONS_COLLECTION)
    query = {"id": mission_id}
    if conditions:
        query.update(conditions)
    doc = await collection.find_one_and_update(
        query,
        {"$inc": increments},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc) if doc else None


async def find_missions(
    query: Optional[dict] = None,
    sort: Optional[list] = None,
    limit: int = 0,
) -> list[dict]:
    """Find missions matching a filter."""
    collection = await get_collection(MISSIONS_COLLECTION)
    cursor = collection.find(query or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return await _collect(cursor)


async def count_missions(query: Optional[dict] = None) -> int:
    collection = await get_collection(MISSIONS_COLLECTION)
    return await collection.count_documents(query or {})


async def create_mission_flag(flag_data: dict) -> None:
    collection = await get_collection(MISSION_FLAGS_COLLECTION)
    await collection.insert_one(flag_data)


async def get_mission_flag(mission_id: int, agent_id: str) -> Optional[dict]:
    collection = await get_collection(MISSION_FLAGS_COLLECTION)
    doc = await collection.find_one({"mission_id": mission_id, "agent_id": agent_id})
    return serialize_doc(doc) if doc else None


# ============================================================
# Claim Operations
# ============================================================

async def create_claim(claim_data: dict) -> int:
    """Create a new claim. Returns claim id."""
    collection = await get_collection(CLAIMS_COLLECTION)
    await collection.insert_one(claim_data)
    logger.info("claim_created", claim_id=claim_data["id"], mission_id=claim_data["mission_id"])
    return claim_data["id"]


async def get_claim(claim_id: int) -> Optional[dict]:
    """Get claim by ID."""
    collection = await get_collection(CLAIMS_COLLECTION)
    doc = await collection.find_one({"id": claim_id})
    return serialize_doc(doc) if doc else None


async def get_claim_for_agent(mission_id: int, agent_id: str) -> Optional[dict]:
    """Get an agent's claim on a mission, if any."""
    collection = await get_collection(CLAIMS_COLLECTION)
    doc = await collection.find_one({"mission_id": mission_id, "agent_id": agent_id})
    return serialize_doc(doc) if doc else None


async def transition_claim(
    claim_id: int,
    from_statuses: list[str],
    updates: dict,
) -> Optional[dict]:
    """Move a claim out of one of ``from_statuses``.

    The status check and the write are a single operation, so two admins
    deciding the same claim cannot both succeed. Returns the claim after the
    update, or None when it was not in an allowed status.
    """
    collection = await get_collection(CLAIMS_COLLECTION)
    doc = await collection.find_one_and_update(
        {"id": claim_id, "status": {"$in": from_statuses}},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc) if doc else None


async def find_claims(
    query: Optional[dict] = None,
    sort: Optional[list] = None,
    limit: int = 0,
) -> list[dict]:
    """Find claims matching a filter."""
    collection = await get_collection(CLAIMS_COLLECTION)
    cursor = collection.find(query or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return await _collect(cursor)


# ============================================================
# Ledger Operations
# ============================================================

async def create_xp_transaction(txn_data: dict) -> None:
    collection = await get_collection(XP_TRANSACTIONS_COLLECTION)
    await collection.insert_one(txn_data)
    logger.info("xp_transaction_created", agent_id=txn_data["agent_id"], action=txn_data["action"], amount=txn_data["amount"])


async def get_xp_transactions(agent_id: str) -> list[dict]:
    collection = await get_collection(XP_TRANSACTIONS_COLLECTION)
    return await _collect(collection.find({"agent_id": agent_id}).sort("created_at", -1))


async def create_trust_change(change_data: dict) -> None:
    collection = await get_collection(TRUST_HISTORY_COLLECTION)
    await collection.insert_one(change_data)


async def get_trust_history(limit: int = 50) -> list[dict]:
    """Get trust tier changes, newest first."""
    collection = await get_collection(TRUST_HISTORY_COLLECTION)
    return await _collect(collection.find({}).sort("created_at", -1).limit(limit))


async def create_withdrawal(withdrawal_data: dict) -> str:
    collection = await get_collection(WITHDRAWALS_COLLECTION)
    await collection.insert_one(withdrawal_data)
    logger.info("withdrawal_created", withdrawal_id=withdrawal_data["id"], amount=withdrawal_data["amount"])
    return withdrawal_data["id"]


async def get_withdrawals_for_agent(agent_id: str, limit: int = 50) -> list[dict]:
    collection = await get_collection(WITHDRAWALS_COLLECTION)
    cursor = collection.find({"agent_id": agent_id}).sort("requested_at", -1).limit(limit)
    return await _collect(cursor)


# ============================================================
# Creator Operations
# ============================================================

async def create_creator(creator_data: dict) -> str:
    collection = await get_collection(CREATORS_COLLECTION)
    await collection.insert_one(creator_data)
    logger.info("creator_application_created", creator_id=creator_data["id"], agent_id=creator_data["agent_id"])
    return creator_data["id"]


async def get_creator(creator_id: str) -> Optional[dict]:
    collection = await get_collection(CREATORS_COLLECTION)
    doc = await collection.find_one({"id": creator_id})
    return serialize_doc(doc) if doc else None


async def get_creator_for_agent(agent_id: str) -> Optional[dict]:
    collection = await get_collection(CREATORS_COLLECTION)
    doc = await collection.find_one({"agent_id": agent_id})
    return serialize_doc(doc) if doc else None


async def transition_creator(
    creator_id: str,
    from_statuses: list[str],
    updates: dict,
) -> Optional[dict]:
    """Move a creator out of one of ``from_statuses``. None when it was not."""
    collection = await get_collection(CREATORS_COLLECTION)
    doc = await collection.find_one_and_update(
        {"id": creator_id, "status": {"$in": from_statuses}},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc) if doc else None


async def find_creators(query: Optional[dict] = None, sort: Optional[list] = None) -> list[dict]:
    collection = await get_collection(CREATORS_COLLECTION)
    cursor = collection.find(query or {})
    if sort:
        cursor = cursor.sort(sort)
    return await _collect(cursor)


async def create_creator_earning(earning_data: dict) -> str:
    collection = await get_collection(CREATOR_EARNINGS_COLLECTION)
    await collection.insert_one(earning_data)
    logger.info("creator_earning_recorded", earning_id=earning_data["id"], amount=earning_data["amount"])
    return earning_data["id"]


async def transition_creator_earning(earning_id: str, from_status: str, updates: dict) -> Optional[dict]:
    collection = await get_collection(CREATOR_EARNINGS_COLLECTION)
    doc = await collection.find_one_and_update(
        {"id": earning_id, "status": from_status},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc) if doc else None


async def get_creator_earning(earning_id: str) -> Optional[dict]:
    collection = await get_collection(CREATOR_EARNINGS_COLLECTION)
    doc = await collection.find_one({"id": earning_id})
    return serialize_doc(doc) if doc else None


async def find_creator_earnings(query: Optional[dict] = None) -> list[dict]:
    collection = await get_collection(CREATOR_EARNINGS_COLLECTION)
    return await _collect(collection.find(query or {}).sort("created_at", -1))


# ============================================================
# Outreach Proof Operations
# ============================================================

async def create_outreach_proof(proof_data: dict) -> int:
    collection = await get_collection(OUTREACH_PROOFS_COLLECTION)
    await collection.insert_one(proof_data)
    logger.info("outreach_proof_created", proof_id=proof_data["id"], claim_id=proof_data["claim_id"])
    return proof_data["id"]


async def get_outreach_proof(proof_id: int) -> Optional[dict]:
    collection = await get_collection(OUTREACH_PROOFS_COLLECTION)
    doc = await collection.find_one({"id": proof_id})
    return serialize_doc(doc) if doc else None


async def transition_outreach_proof(
    proof_id: int,
    from_status: str,
    updates: dict,
) -> Optional[dict]:
    collection = await get_collection(OUTREACH_PROOFS_COLLECTION)
    doc = await collection.find_one_and_update(
        {"id": proof_id, "status": from_status},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc) if doc else None


async def find_outreach_proofs(query: Optional[dict] = None, limit: int = 0) -> list[dict]:
    collection = await get_collection(OUTREACH_PROOFS_COLLECTION)
    cursor = collection.find(query or {}).sort("created_at", 1)
    if limit:
        cursor = cursor.limit(limit)
    return await _collect(cursor)


# ============================================================
# Index Setup
# ============================================================

async def init_db():
    """Initialize database connection and create indexes."""
    try:
        await setup_indexes()
        logger.info("database_initialized")
    except Exception as e:
        # Indexes usually exist already; a failure here should not stop the API
        logger.warning("index_setup_failed", error=str(e), note="continuing without index creation")


async def setup_indexes():
    """Create indexes for all collections."""
    db = await get_db()

    agents = db[AGENTS_COLLECTION]
    await agents.create_index([("id", 1)], unique=True)
    await agents.create_index([("wallet_address", 1)], unique=True)
    await agents.create_index([("referral_code", 1)])
    await agents.create_index([("xp", -1)])
    await agents.create_index([("trust_tier", 1)])

    missions = db[MISSIONS_COLLECTION]
    await missions.create_index([("id", 1)], unique=True)
    await missions.create_index([("status", 1), ("priority", -1), ("created_at", -1)])
    await missions.create_index([("creator_id", 1)])

    claims = db[CLAIMS_COLLECTION]
    await claims.create_index([("id", 1)], unique=True)
    await claims.create_index([("mission_id", 1), ("agent_id", 1)], unique=True)
    await claims.create_index([("status", 1), ("submitted_at", 1)])
    await claims.create_index([("agent_id", 1)])

    xp_txns = db[XP_TRANSACTIONS_COLLECTION]
    await xp_txns.create_index([("agent_id", 1), ("created_at", -1)])

    history = db[TRUST_HISTORY_COLLECTION]
    await history.create_index([("created_at", -1)])
    await history.create_index([("agent_id", 1)])

    withdrawals = db[WITHDRAWALS_COLLECTION]
    await withdrawals.create_index([("id", 1)], unique=True)
    await withdrawals.create_index([("agent_id", 1), ("requested_at", -1)])

    flags = db[MISSION_FLAGS_COLLECTION]
    await flags.create_index([("mission_id", 1), ("agent_id", 1)], unique=True)

    counters = db[COUNTERS_COLLECTION]
    await counters.create_index([("name", 1)], unique=True)

    creators = db[CREATORS_COLLECTION]
    await creators.create_index([("id", 1)], unique=True)
    await creators.create_index([("agent_id", 1)], unique=True)
    await creators.create_index([("status", 1), ("onboarded_at", -1)])

    earnings = db[CREATOR_EARNINGS_COLLECTION]
    await earnings.create_index([("id", 1)], unique=True)
    await earnings.create_index([("creator_id", 1), ("status", 1)])

    proofs = db[OUTREACH_PROOFS_COLLECTION]
    await proofs.create_index([("id", 1)], unique=True)
    await proofs.create_index([("status", 1), ("created_at", 1)])
    await proofs.create_index([("claim_id", 1)])

    logger.info("indexes_created")
