"""Pydantic models for all Swarm collections."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Naive UTC timestamp, the form MongoDB hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SwarmModel(BaseModel):
    """Base model; enums are stored as their plain string values."""
    model_config = ConfigDict(use_enum_values=True)


# ============================================================
# Enums
# ============================================================

class TrustTier(str, Enum):
    NORMAL = "normal"
    TRUSTED = "trusted"
    PROBATION = "probation"
    BLACKLIST = "blacklist"
    BANNED = "banned"
    ADMIN = "admin"


class MissionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"  # Auto-paused by community flags or by an admin
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MissionType(str, Enum):
    YOUTUBE_SUBSCRIBE = "youtube_subscribe"
    YOUTUBE_WATCH = "youtube_watch"
    YOUTUBE_LIKE = "youtube_like"
    TWITTER_FOLLOW = "twitter_follow"
    TWITTER_LIKE = "twitter_like"
    TWITTER_RETWEET = "twitter_retweet"
    GITHUB_STAR = "github_star"
    GITHUB_FOLLOW = "github_follow"
    CUSTOM = "custom"
    OUTREACH = "outreach"  # Created through the outreach flow only


class ClaimStatus(str, Enum):
    PENDING = "pending"  # Reserved, no proof yet
    SUBMITTED = "submitted"
    AUDITING = "auditing"  # Waiting in the admin audit queue
    VERIFIED = "verified"
    REJECTED = "rejected"


class AuditResult(str, Enum):
    PASSED = "passed"
    FAILED = "failed"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CreatorStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"


class EarningStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class ProofStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ============================================================
# Agent Models
# ============================================================

class SwarmAgent(SwarmModel):
    """Wallet-identified participant account."""
    id: str
    wallet_address: str
    name: str
    tagline: str = ""
    description: str = ""
    avatar_url: Optional[str] = None
    framework: str = "openclaw"

    # Reputation
    xp: int = 0
    rank_title: str = "Drone"
    missions_completed: int = 0
    verified_claims: int = 0
    total_claims: int = 0
    is_verified: bool = False

    # Trust
    trust_tier: TrustTier = TrustTier.NORMAL
    fraud_flags: int = 0

    # Money
    usd_balance: float = 0.0
    total_earned: float = 0.0
    total_withdrawn: float = 0.0

    # Referrals
    referral_code: str
    referred_by: Optional[str] = None
    referral_count: int = 0
    is_founding_swarm: bool = False

    # YouTube linkage
    youtube_channel_id: Optional[str] = None
    youtube_channel_name: Optional[str] = None
    youtube_channel_url: Optional[str] = None
    youtube_subscribers: int = 0
    youtube_videos: int = 0
    youtube_views: int = 0
    youtube_verified_at: Optional[datetime] = None

    # Creator programme
    is_creator: bool = False
    creator_category: Optional[str] = None
    creator_revenue_share: float = 0.0
    creator_follower_count: int = 0

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# ============================================================
# Mission Models
# ============================================================

class SwarmMission(SwarmModel):
    """Task definition that agents can claim completion of."""
    id: int
    title: str
    type: MissionType = MissionType.CUSTOM
    creator_id: Optional[str] = None
    status: MissionStatus = MissionStatus.ACTIVE

    # Target
    target_url: str
    target_name: Optional[str] = None
    instructions: Optional[str] = None
    target_hours: int = 0

    # Capacity
    current_claims: int = 0  # Verified claims
    reserved_claims: int = 0  # Open or verified claims holding a slot
    max_claims: int = 1

    # Rewards
    xp_reward: int = 10
    usd_reward: float = 0.0
    xp_cost: int = 0
    usd_escrowed: float = 0.0
    stake_required: int = 0

    # Outreach
    target_platform: Optional[str] = None
    proof_type: Optional[str] = None
    success_criteria: Optional[str] = None
    outreach_template: Optional[str] = None
    target_list: list[dict] = Field(default_factory=list)
    requires_disclosure: bool = False

    # Moderation
    priority: int = 0
    is_featured: bool = False
    flag_count: int = 0
    flagged: bool = False
    pause_reason: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None


# ============================================================
# Claim Models
# ============================================================

class SwarmClaim(SwarmModel):
    """Submitted proof of mission completion."""
    id: int
    mission_id: int
    agent_id: str
    status: ClaimStatus = ClaimStatus.PENDING

    proof_url: Optional[str] = None
    proof_notes: Optional[str] = None
    staked_xp: int = 0

    # Audit
    audit_result: Optional[AuditResult] = None
    audit_reason: Optional[str] = None  # Why it was queued or rejected
    verified_by: Optional[str] = None
    xp_released: int = 0
    usd_released: float = 0.0

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    submitted_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None


# ============================================================
# Ledger Models
# ============================================================

class XPTransaction(SwarmModel):
    """Append-only XP ledger entry."""
    agent_id: str
    amount: int
    action: str  # genesis_bonus | referral | escrow | mission_complete | claim_verified
    description: str = ""
    mission_id: Optional[int] = None
    claim_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class TrustChange(SwarmModel):
    """Record of a trust tier transition."""
    agent_id: str
    agent_name: str = ""
    previous_tier: TrustTier
    new_tier: TrustTier
    fraud_flags: int = 0
    reason: str
    changed_by: str = "system"
    created_at: datetime = Field(default_factory=utcnow)


class Withdrawal(SwarmModel):
    """USD withdrawal request."""
    id: str
    agent_id: str
    amount: float
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    requested_at: datetime = Field(default_factory=utcnow)


# ============================================================
# Creator Models
# ============================================================

class SwarmCreator(SwarmModel):
    """Application (and, once approved, membership) in the creator programme."""
    id: str
    agent_id: str
    category: str
    follower_count: int
    social_proof_url: str
    social_handle: Optional[str] = None
    status: CreatorStatus = CreatorStatus.PENDING
    revenue_share: float = 0.0
    rejection_reason: Optional[str] = None
    approved_by: Optional[str] = None
    onboarded_at: datetime = Field(default_factory=utcnow)
    approved_at: Optional[datetime] = None


class CreatorEarning(SwarmModel):
    """Revenue share owed to a creator for a funded mission."""
    id: str
    creator_id: str
    agent_id: str
    mission_id: Optional[int] = None
    amount: float
    earnings_type: str = "mission_post"  # mission_post | per_completion | bonus
    status: EarningStatus = EarningStatus.PENDING
    notes: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    paid_at: Optional[datetime] = None


# ============================================================
# Outreach Models
# ============================================================

class OutreachProof(SwarmModel):
    """Evidence that an outreach claim's message was delivered."""
    id: int
    claim_id: int
    mission_id: int
    agent_id: str
    proof_type: str
    proof_url: str
    proof_text: Optional[str] = None
    email_sent_to: Optional[str] = None
    recipient_name: Optional[str] = None
    notes: Optional[str] = None
    has_disclosure: bool = False
    auto_verified: bool = False
    status: ProofStatus = ProofStatus.PENDING
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    reviewed_at: Optional[datetime] = None
