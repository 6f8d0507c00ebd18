"""Wallet-based authentication for The Swarm.

Agents prove wallet ownership by signing a challenge message with
``personal_sign`` (EIP-191). Challenges are stateless: the message carries
the wallet and a millisecond timestamp, so any API instance can verify it.

Flow:
1. Client requests a challenge: GET /api/auth/cli?wallet=0x...
2. Client signs the returned message with its wallet
3. Client posts wallet, signature and message to POST /api/auth/cli
4. Server returns a signed session token
5. Client sends it as ``Authorization: Bearer <token>`` (or the
   ``session_token`` cookie)

Session tokens are HS256 JWTs keyed by ``SESSION_SECRET``, which has no
default and must be at least 32 characters. The OAuth ``state`` parameter
is a JWT of its own ``typ`` signed the same way.
"""

import re
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from eth_account import Account
from eth_account.messages import encode_defunct
import structlog

from .config import get_settings
from .errors import AuthenticationError, ConfigurationError, ValidationError

logger = structlog.get_logger()

CHALLENGE_PREFIX = "Sign this message to authenticate with The Swarm."
_TIMESTAMP_RE = re.compile(r"Timestamp: (\d+)")
_WALLET_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


@dataclass
class AuthenticatedAgent:
    """Represents an authenticated agent."""
    agent_id: Optional[str]
    wallet: str
    name: str = ""
    role: str = "agent"
    session_token: Optional[str] = None


def short_wallet(wallet: str) -> str:
    return (wallet or "")[:10] + "..."


def normalize_wallet(wallet: Optional[str]) -> str:
    """Lower-case a wallet address, rejecting anything that is not 0x + 40 hex."""
    wallet = (wallet or "").strip()
    if not wallet:
        raise ValidationError("Wallet address is required")
    if not _WALLET_RE.match(wallet):
        raise ValidationError("Invalid wallet address format")
    return wallet.lower()


# ============================================================
# Challenges
# ============================================================

def create_challenge(wallet: str) -> dict:
    """Create a sign-in challenge for a wallet.

    Returns:
        Challenge message, issue timestamp (ms) and expiry (ms)
    """
    wallet = normalize_wallet(wallet)
    settings = get_settings()
    timestamp = int(time.time() * 1000)
    nonce = secrets.token_hex(8)
    message = f"{CHALLENGE_PREFIX}\n\nWallet: {wallet}\nTimestamp: {timestamp}\nNonce: {nonce}"

    logger.info("auth_challenge_created", wallet=short_wallet(wallet))

    return {
        "challenge": message,
        "timestamp": timestamp,
        "expires_at": timestamp + settings.challenge_expiry_seconds * 1000,
    }


def verify_challenge(wallet: str, signature: str, message: str) -> str:
    """Verify a signed challenge.

    Args:
        wallet: Wallet address that claims to have signed
        signature: Hex signature from the wallet
        message: The exact challenge text that was signed

    Returns:
        The normalized wallet address

    Raises:
        ValidationError: missing fields or a malformed signature
        AuthenticationError: wrong signer or expired challenge
    """
    if not wallet or not signature or not message:
        raise ValidationError("Wallet address, signature, and message are required")
    wallet = normalize_wallet(wallet)

    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:
        logger.warning("auth_signature_malformed", wallet=short_wallet(wallet), error=str(e))
        raise ValidationError("Invalid signature format")

    if recovered.lower() != wallet:
        logger.warning("auth_signature_mismatch", wallet=short_wallet(wallet))
        raise AuthenticationError("Signature verification failed")

    if f"wallet: {wallet}" not in message.lower():
        raise AuthenticationError("Challenge was issued for a different wallet")

    match = _TIMESTAMP_RE.search(message)
    if not match:
        raise AuthenticationError("Challenge has no timestamp")

    age_ms = int(time.time() * 1000) - int(match.group(1))
    if age_ms > get_settings().challenge_expiry_seconds * 1000:
        logger.info("auth_challenge_expired", wallet=short_wallet(wallet))
        raise AuthenticationError("Challenge expired. Please request a new one.")

    logger.info("auth_signature_valid", wallet=short_wallet(wallet))
    return wallet


# ============================================================
# Signed tokens
# ============================================================

JWT_ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32


def session_secret() -> str:
    """Return the signing secret, refusing to sign with a missing or short one."""
    secret = get_settings().session_secret
    if len(secret or "") < MIN_SECRET_LENGTH:
        raise ConfigurationError(
            f"SESSION_SECRET must be set to at least {MIN_SECRET_LENGTH} characters"
        )
    return secret


def _sign(data: dict) -> str:
    return jwt.encode(data, session_secret(), algorithm=JWT_ALGORITHM)


def _unsign(token: str, kind: str) -> dict:
    secret = session_secret()
    try:
        data = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM], options={"require": ["exp"]})
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    if data.get("typ") != kind:
        raise AuthenticationError("Wrong token type")
    return data


def create_session_token(
    agent_id: str,
    wallet: str,
    name: str = "",
    role: str = "agent",
    expires_in: Optional[int] = None,
) -> str:
    """Issue a signed session token."""
    now = int(time.time())
    if expires_in is None:
        expires_in = get_settings().session_expiry_seconds
    token = _sign({
        "typ": "session",
        "agent_id": agent_id,
        "wallet": wallet.lower(),
        "name": name,
        "role": role,
        "iat": now,
        "exp": now + expires_in,
    })
    logger.info("session_created", wallet=short_wallet(wallet), agent_id=agent_id)
    return token


def verify_session_token(token: str) -> dict:
    """Return the session payload, raising AuthenticationError when invalid."""
    return _unsign(token, "session")


def sign_state(data: dict, expires_in: int = 600) -> str:
    """Sign an OAuth ``state`` value."""
    return _sign({**data, "typ": "state", "exp": int(time.time()) + expires_in})


def read_state(state: str) -> dict:
    return _unsign(state, "state")


# ============================================================
# FastAPI dependencies
# ============================================================

security = HTTPBearer(auto_error=False)


async def get_current_agent(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthenticatedAgent]:
    """FastAPI dependency for the optional caller identity.

    Reads a Bearer token, falling back to the ``session_token`` cookie.
    """
    token = credentials.credentials if credentials else request.cookies.get("session_token")
    if not token:
        return None

    try:
        session = verify_session_token(token)
    except AuthenticationError as e:
        logger.info("session_rejected", reason=str(e))
        return None

    return AuthenticatedAgent(
        agent_id=session.get("agent_id"),
        wallet=session.get("wallet", ""),
        name=session.get("name", ""),
        role=session.get("role", "agent"),
        session_token=token,
    )


async def require_auth(
    agent: Optional[AuthenticatedAgent] = Depends(get_current_agent),
) -> AuthenticatedAgent:
    """FastAPI dependency that requires a valid session."""
    if not agent:
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Use /api/auth/cli to get a signing challenge.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return agent


async def require_admin(
    agent: Optional[AuthenticatedAgent] = Depends(get_current_agent),
) -> AuthenticatedAgent:
    """FastAPI dependency for the admin surface.

    The caller's agent must currently hold the admin tier, or its wallet
    must be listed in ``ADMIN_WALLETS``. With ``AUTH_ENABLED=false`` the
    check is skipped for local development.
    """
    settings = get_settings()
    if not settings.auth_enabled:
        return agent or AuthenticatedAgent(agent_id=None, wallet="0x" + "0" * 40, role="admin")

    agent = await require_auth(agent)

    if agent.wallet.lower() in settings.admin_wallet_list:
        return agent

    from .db import get_agent
    from .trust import is_admin_tier
    record = await get_agent(agent.agent_id) if agent.agent_id else None
    if not record or not is_admin_tier(record):
        logger.warning("admin_access_denied", agent_id=agent.agent_id)
        raise HTTPException(status_code=403, detail="Admin access required")

    agent.role = "admin"
    return agent
