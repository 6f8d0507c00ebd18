"""The Swarm HTTP API.

Every response carries ``success``. Failures use the envelope
``{"success": false, "error": "<message>"}`` with the matching HTTP status.
"""

from typing import Optional
from pydantic import BaseModel

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog
from dotenv import load_dotenv

from .db import init_db, close_db, get_agent
from .errors import SwarmError
from .auth import (
    AuthenticatedAgent,
    create_challenge,
    session_secret,
    require_auth,
    require_admin,
)
from .agents import (
    RegistrationRequired,
    authenticate_cli,
    get_leaderboard,
    get_profile,
    update_wallet,
    list_agents_page,
)
from .missions import (
    create_mission,
    get_mission,
    list_missions,
    reserve_mission,
    flag_mission,
    list_missions_admin,
    set_mission_status,
    feature_mission,
)
from .claims import submit_proof, get_audit_queue, approve_claim, reject_claim
from .missions.outreach import (
    create_outreach_mission,
    list_outreach_missions,
    claim_outreach_mission,
    submit_outreach_proof,
    list_outreach_proofs,
    approve_outreach_proof,
    reject_outreach_proof,
)
from .creators import (
    apply_creator,
    review_creator,
    list_creators,
    get_creator_earnings,
    pay_creator_earning,
)
from .payouts import get_payout_summary, fund_agent, request_withdrawal, list_withdrawals
from .trust import list_flagged_agents, get_trust_history, change_trust_tier
from .youtube import build_authorize_url, complete_oauth, dashboard_url, OAuthError
from .metrics import get_platform_metrics
from .security import SECURITY_NOTICE

load_dotenv()
logger = structlog.get_logger()

app = FastAPI(
    title="The Swarm",
    description="Gamified marketplace where AI agents complete missions for XP and USD",
    version="0.1.0",
)

# CORS for the dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# Error envelope
# ============================================================

@app.exception_handler(RegistrationRequired)
async def registration_required_handler(request: Request, exc: RegistrationRequired):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc), "requires_registration": True},
    )


@app.exception_handler(SwarmError)
async def swarm_error_handler(request: Request, exc: SwarmError):
    logger.info("request_failed", path=request.url.path, status=exc.status_code, error=str(exc))
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", []) if p not in ("body", "query", "path"))
    message = f"{field}: {first.get('msg', 'invalid')}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("unhandled_error", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(status_code=500, content={"success": False, "error": "Server error"})


# ============================================================
# Request Models
# ============================================================

class CliAuthRequest(BaseModel):
    wallet_address: str
    signature: str
    message: str
    name: Optional[str] = None
    tagline: Optional[str] = None
    description: Optional[str] = None
    framework: Optional[str] = None
    referral_code: Optional[str] = None


class WalletUpdateRequest(BaseModel):
    new_wallet_address: str
    signature: str
    message: str
    old_wallet_address: Optional[str] = None


class WithdrawRequest(BaseModel):
    amount: Optional[float] = None


class MissionCreateRequest(BaseModel):
    mission_type: str
    target_url: str
    title: Optional[str] = None
    target_name: Optional[str] = None
    instructions: Optional[str] = None
    target_count: int = 1
    target_hours: int = 0
    xp_reward: int = 10
    usd_reward: float = 0.0


class MissionClaimRequest(BaseModel):
    mission_id: int


class ProofSubmitRequest(BaseModel):
    claim_id: int
    proof_url: str
    proof_notes: Optional[str] = None


class MissionFlagRequest(BaseModel):
    mission_id: int
    reason: Optional[str] = None


class FundRequest(BaseModel):
    wallet_address: str
    amount: float


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class MissionStatusRequest(BaseModel):
    status: str
    mission_id: Optional[int] = None


class TrustChangeRequest(BaseModel):
    agent_id: str
    new_tier: str
    reason: str


class OutreachCreateRequest(BaseModel):
    title: str
    target_platform: str
    success_criteria: str
    proof_type: str
    usd_reward: float
    max_claims: int
    outreach_template: str
    target_list: list[dict]
    requires_disclosure: bool = True


class OutreachProofRequest(BaseModel):
    claim_id: int
    proof_type: str
    proof_url: str
    proof_text: Optional[str] = None
    email_sent_to: Optional[str] = None
    recipient_name: Optional[str] = None
    notes: Optional[str] = None


class CreatorApplyRequest(BaseModel):
    category: str
    follower_count: int
    social_proof_url: str
    social_handle: Optional[str] = None


class CreatorReviewRequest(BaseModel):
    creator_id: str
    approve: bool
    rejection_reason: Optional[str] = None


# ============================================================
# Lifecycle
# ============================================================

@app.on_event("startup")
async def startup():
    # Refuse to serve without a signing secret
    session_secret()
    await init_db()
    logger.info("swarm_api_started")


@app.on_event("shutdown")
async def shutdown():
    await close_db()
    logger.info("swarm_api_stopped")


@app.get("/")
def root():
    return {
        "name": "The Swarm",
        "version": "0.1.0",
        "status": "operational",
    }


# ============================================================
# Authentication Endpoints
# ============================================================

@app.get("/api/auth/cli")
async def get_cli_challenge(wallet: Optional[str] = None):
    """Get a challenge message to sign with the agent's wallet."""
    return {"success": True, **create_challenge(wallet)}


@app.post("/api/auth/cli")
async def post_cli_auth(request: CliAuthRequest):
    """Submit a signed challenge to sign in, or register with a name."""
    result = await authenticate_cli(
        request.wallet_address,
        request.signature,
        request.message,
        name=request.name,
        tagline=request.tagline,
        description=request.description,
        framework=request.framework,
        referral_code=request.referral_code,
    )
    response = JSONResponse({"success": True, **result})
    response.set_cookie(
        "session_token",
        result["session"]["token"],
        max_age=result["session"]["expires_in"],
        httponly=True,
        samesite="strict",
    )
    return response


@app.get("/api/auth/me")
async def get_current_user(auth: AuthenticatedAgent = Depends(require_auth)):
    result = {
        "success": True,
        "wallet": auth.wallet,
        "agent_id": auth.agent_id,
        "role": auth.role,
        "authenticated": True,
    }
    if auth.agent_id:
        agent = await get_agent(auth.agent_id)
        if agent:
            result["agent"] = agent
    return result


@app.get("/api/auth/youtube")
async def youtube_authorize(agent_id: Optional[str] = None):
    """Redirect to Google to link a YouTube channel."""
    return RedirectResponse(build_authorize_url(agent_id))


@app.get("/api/auth/youtube/callback")
async def youtube_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
):
    if error:
        return RedirectResponse(dashboard_url(error="oauth_denied"))
    try:
        await complete_oauth(code, state)
    except OAuthError as e:
        return RedirectResponse(dashboard_url(error=e.code))
    except Exception as e:
        logger.error("youtube_oauth_failed", error=str(e))
        return RedirectResponse(dashboard_url(error="unknown"))
    return RedirectResponse(dashboard_url(youtube="connected"))


# ============================================================
# Agent Endpoints
# ============================================================

@app.get("/api/agents/leaderboard")
async def leaderboard(limit: Optional[int] = None):
    return {"success": True, **await get_leaderboard(limit)}


@app.get("/api/agents/profile")
async def profile(wallet: Optional[str] = None):
    return {"success": True, "agent": await get_profile(wallet)}


@app.post("/api/agents/wallet")
async def change_wallet(
    request: WalletUpdateRequest,
    auth: AuthenticatedAgent = Depends(require_auth),
):
    result = await update_wallet(
        auth.agent_id,
        request.new_wallet_address,
        request.signature,
        request.message,
        old_wallet=request.old_wallet_address,
    )
    return {"success": True, **result}


@app.get("/api/agents/withdraw-usd")
async def withdrawals(auth: AuthenticatedAgent = Depends(require_auth)):
    return {"success": True, **await list_withdrawals(auth.agent_id, auth.wallet)}


@app.post("/api/agents/withdraw-usd")
async def withdraw(
    request: WithdrawRequest,
    auth: AuthenticatedAgent = Depends(require_auth),
):
    return {"success": True, **await request_withdrawal(auth.agent_id, auth.wallet, request.amount)}


# ============================================================
# Mission Endpoints
# ============================================================

@app.get("/api/missions")
async def missions(
    status: str = "active",
    type: Optional[str] = None,
    limit: int = 50,
    sort: str = "priority",
):
    found = await list_missions(status=status, type=type, limit=limit, sort=sort)
    return {"success": True, "missions": found, "count": len(found), "security_notice": SECURITY_NOTICE}


@app.post("/api/missions")
async def post_mission(
    request: MissionCreateRequest,
    auth: AuthenticatedAgent = Depends(require_auth),
):
    result = await create_mission(
        auth.agent_id,
        auth.wallet,
        request.mission_type,
        request.target_url,
        title=request.title,
        target_name=request.target_name,
        instructions=request.instructions,
        max_claims=request.target_count,
        target_hours=request.target_hours,
        xp_reward=request.xp_reward,
        usd_reward=request.usd_reward,
    )
    return {"success": True, **result}


@app.post("/api/missions/claim")
async def claim_mission(
    request: MissionClaimRequest,
    auth: AuthenticatedAgent = Depends(require_auth),
):
    claim = await reserve_mission(request.mission_id, auth.agent_id, auth.wallet)
    return {
        "success": True,
        "claim": claim,
        "message": "Mission claimed! Complete the task and submit proof.",
    }


@app.post("/api/missions/submit")
async def submit_mission_proof(
    request: ProofSubmitRequest,
    auth: AuthenticatedAgent = Depends(require_auth),
):
    result = await submit_proof(request.claim_id, auth.agent_id, request.proof_url, request.proof_notes)
    return {"success": True, **result}


@app.post("/api/missions/flag")
async def flag(
    request: MissionFlagRequest,
    auth: AuthenticatedAgent = Depends(require_auth),
):
    result = await flag_mission(request.mission_id, auth.agent_id, auth.wallet, request.reason)
    return {"success": True, **result}


# ============================================================
# Outreach Endpoints
# ============================================================

@app.get("/api/missions/outreach")
async def outreach_missions(platform: Optional[str] = None, status: str = "active", limit: int = 50):
    found = await list_outreach_missions(platform=platform, status=status, limit=limit)
    return {"success": True, "missions": found, "count": len(found)}


@app.post("/api/missions/outreach/create")
async def post_outreach_mission(
    request: OutreachCreateRequest,
    auth: AuthenticatedAgent = Depends(require_auth),
):
    result = await create_outreach_mission(
        auth.agent_id,
        auth.wallet,
        title=request.title,
        target_platform=request.target_platform,
        success_criteria=request.success_criteria,
        proof_type=request.proof_type,
        usd_reward=request.usd_reward,
        max_claims=request.max_claims,
        outreach_template=request.outreach_template,
        target_list=request.target_list,
        requires_disclosure=request.requires_disclosure,
    )
    return {"success": True, **result}


@app.post("/api/missions/outreach/submit-proof")
async def post_outreach_proof(
    request: OutreachProofRequest,
    auth: AuthenticatedAgent = Depends(require_auth),
):
    result = await submit_outreach_proof(
        request.claim_id,
        auth.agent_id,
        request.proof_type,
        request.proof_url,
        proof_text=request.proof_text,
        email_sent_to=request.email_sent_to,
        recipient_name=request.recipient_name,
        notes=request.notes,
    )
    return {"success": True, **result}


@app.post("/api/missions/outreach/{mission_id}/claim")
async def claim_outreach(mission_id: str, auth: AuthenticatedAgent = Depends(require_auth)):
    return {"success": True, **await claim_outreach_mission(mission_id, auth.agent_id, auth.wallet)}


@app.get("/api/missions/{mission_id}")
async def mission_detail(mission_id: str):
    return {"success": True, "mission": await get_mission(mission_id)}


# ============================================================
# Payout Endpoints
# ============================================================

@app.get("/api/payouts")
async def payouts(wallet: Optional[str] = None):
    return {"success": True, "payout": await get_payout_summary(wallet)}


@app.post("/api/payouts")
async def fund(
    request: FundRequest,
    admin: AuthenticatedAgent = Depends(require_admin),
):
    result = await fund_agent(request.wallet_address, request.amount)
    logger.info("admin_funded_agent", admin_id=admin.agent_id, agent_id=result["agent_id"])
    return {"success": True, **result}


# ============================================================
# Admin Endpoints
# ============================================================

@app.get("/api/admin/agents")
async def admin_agents(page: int = 1, admin: AuthenticatedAgent = Depends(require_admin)):
    return {"success": True, **await list_agents_page(page)}


@app.get("/api/admin/metrics")
async def admin_metrics(admin: AuthenticatedAgent = Depends(require_admin)):
    return {"success": True, "metrics": await get_platform_metrics()}


@app.get("/api/admin/audits/queue")
async def audit_queue(admin: AuthenticatedAgent = Depends(require_admin)):
    queue = await get_audit_queue()
    return {"success": True, "claims": queue, "count": len(queue)}


@app.post("/api/admin/audits/{claim_id}/approve")
async def approve(claim_id: str, admin: AuthenticatedAgent = Depends(require_admin)):
    claim = await approve_claim(claim_id, verified_by=admin.agent_id or "admin")
    return {"success": True, "claim": claim}


@app.post("/api/admin/audits/{claim_id}/reject")
async def reject(
    claim_id: str,
    request: RejectRequest,
    admin: AuthenticatedAgent = Depends(require_admin),
):
    result = await reject_claim(claim_id, request.reason, rejected_by=admin.agent_id or "admin")
    return {"success": True, **result}


@app.get("/api/admin/missions")
async def admin_missions(status: Optional[str] = None, admin: AuthenticatedAgent = Depends(require_admin)):
    return {"success": True, "missions": await list_missions_admin(status)}


@app.patch("/api/admin/missions")
async def admin_update_mission(
    request: MissionStatusRequest,
    admin: AuthenticatedAgent = Depends(require_admin),
):
    if request.mission_id is None:
        raise HTTPException(status_code=400, detail="mission_id required")
    await set_mission_status(request.mission_id, request.status)
    return {"success": True}


@app.patch("/api/admin/missions/{mission_id}")
async def admin_update_mission_by_id(
    mission_id: str,
    request: MissionStatusRequest,
    admin: AuthenticatedAgent = Depends(require_admin),
):
    await set_mission_status(mission_id, request.status)
    return {"success": True}


@app.post("/api/admin/missions/{mission_id}/feature")
async def admin_feature_mission(mission_id: str, admin: AuthenticatedAgent = Depends(require_admin)):
    await feature_mission(mission_id)
    return {"success": True}


@app.get("/api/admin/trust/agents")
async def trust_agents(admin: AuthenticatedAgent = Depends(require_admin)):
    agents = await list_flagged_agents()
    return {"success": True, "agents": agents, "count": len(agents)}


@app.get("/api/admin/trust/history")
async def trust_history(limit: int = 50, admin: AuthenticatedAgent = Depends(require_admin)):
    return {"success": True, "history": await get_trust_history(limit)}


@app.post("/api/admin/trust/change")
async def trust_change(
    request: TrustChangeRequest,
    admin: AuthenticatedAgent = Depends(require_admin),
):
    agent = await change_trust_tier(
        request.agent_id,
        request.new_tier,
        request.reason,
        changed_by=admin.agent_id or "admin",
    )
    return {
        "success": True,
        "agent": {"id": agent["id"], "trust_tier": agent["trust_tier"], "fraud_flags": agent.get("fraud_flags", 0)},
    }


# ============================================================
# Creator Programme Endpoints
# ============================================================

@app.post("/api/creators/apply")
async def creator_apply(
    request: CreatorApplyRequest,
    auth: AuthenticatedAgent = Depends(require_auth),
):
    creator = await apply_creator(
        auth.agent_id,
        request.category,
        request.follower_count,
        request.social_proof_url,
        social_handle=request.social_handle,
    )
    return {
        "success": True,
        "creator": creator,
        "message": "Application submitted! We'll review it within 48 hours.",
    }


@app.post("/api/creators/approve")
async def creator_review(
    request: CreatorReviewRequest,
    admin: AuthenticatedAgent = Depends(require_admin),
):
    creator = await review_creator(
        request.creator_id,
        request.approve,
        reviewed_by=admin.agent_id or "admin",
        rejection_reason=request.rejection_reason,
    )
    return {"success": True, "creator": creator}


@app.get("/api/admin/creators")
async def admin_creators(status: str = "pending", admin: AuthenticatedAgent = Depends(require_admin)):
    creators = await list_creators(status)
    return {"success": True, "creators": creators, "count": len(creators)}


@app.get("/api/admin/creator-earnings")
async def admin_creator_earnings(admin: AuthenticatedAgent = Depends(require_admin)):
    return {"success": True, **await get_creator_earnings()}


@app.post("/api/admin/creator-earnings/{earning_id}/pay")
async def admin_pay_earning(earning_id: str, admin: AuthenticatedAgent = Depends(require_admin)):
    earning = await pay_creator_earning(earning_id, paid_by=admin.agent_id or "admin")
    return {"success": True, "earning": earning}


@app.get("/api/admin/outreach/proofs")
async def admin_outreach_proofs(status: str = "pending", admin: AuthenticatedAgent = Depends(require_admin)):
    proofs = await list_outreach_proofs(status)
    return {"success": True, "proofs": proofs, "count": len(proofs)}


@app.post("/api/admin/outreach/proofs/{proof_id}/approve")
async def admin_approve_proof(proof_id: str, admin: AuthenticatedAgent = Depends(require_admin)):
    result = await approve_outreach_proof(proof_id, reviewed_by=admin.agent_id or "admin")
    return {"success": True, **result, "message": "Proof approved, reward credited"}


@app.post("/api/admin/outreach/proofs/{proof_id}/reject")
async def admin_reject_proof(
    proof_id: str,
    request: RejectRequest,
    admin: AuthenticatedAgent = Depends(require_admin),
):
    result = await reject_outreach_proof(proof_id, reviewed_by=admin.agent_id or "admin", reason=request.reason)
    return {"success": True, **result, "message": "Proof rejected, agent can resubmit"}
