"""YouTube channel linking via Google OAuth."""

from typing import Optional
from urllib.parse import urlencode
import httpx
import structlog

from .models import utcnow
from .db import get_agent, update_agent
from .auth import sign_state, read_state
from .config import get_settings
from .errors import SwarmError, ValidationError, AuthenticationError

logger = structlog.get_logger()

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
CHANNELS_URL = "https://www.googleapis.com/youtube/v3/channels"
SCOPES = [
    "https://www.googleapis.com/auth/youtube.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]
OAUTH_TIMEOUT = 15.0


class OAuthError(SwarmError):
    """OAuth flow failure. ``code`` goes into the dashboard redirect."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code


class OAuthNotConfigured(SwarmError):
    status_code = 500


def build_authorize_url(agent_id: Optional[str]) -> str:
    """Google consent URL for linking a channel to ``agent_id``."""
    if not agent_id:
        raise ValidationError("agent_id required")
    settings = get_settings()
    if not settings.youtube_client_id:
        raise OAuthNotConfigured("YouTube OAuth not configured")

    params = {
        "client_id": settings.youtube_client_id,
        "redirect_uri": settings.youtube_redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES),
        "access_type": "offline",
        "prompt": "consent",
        "state": sign_state({"agent_id": agent_id}),
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def dashboard_url(**params) -> str:
    return f"{get_settings().app_url.rstrip('/')}/dashboard?{urlencode(params)}"


def channel_fields(channel: dict) -> dict:
    """Agent fields for a channel resource from the YouTube Data API."""
    snippet = channel.get("snippet", {})
    stats = channel.get("statistics", {})
    custom_url = snippet.get("customUrl")
    return {
        "youtube_channel_id": channel["id"],
        "youtube_channel_name": snippet.get("title"),
        "youtube_channel_url": (
            f"https://youtube.com/{custom_url}" if custom_url
            else f"https://youtube.com/channel/{channel['id']}"
        ),
        "youtube_subscribers": int(stats.get("subscriberCount") or 0),
        "youtube_videos": int(stats.get("videoCount") or 0),
        "youtube_views": int(stats.get("viewCount") or 0),
    }


async def complete_oauth(
    code: Optional[str],
    state: Optional[str],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """Exchange the authorization code and store the channel on the agent.

    Raises:
        OAuthError: with the code used in the dashboard redirect
    """
    if not code or not state:
        raise OAuthError("missing_params")
    try:
        agent_id = read_state(state)["agent_id"]
    except (AuthenticationError, KeyError):
        raise OAuthError("invalid_state")

    if not await get_agent(agent_id):
        raise OAuthError("unknown_agent")

    settings = get_settings()
    async with httpx.AsyncClient(timeout=OAUTH_TIMEOUT, transport=transport) as client:
        token_response = await client.post(TOKEN_URL, data={
            "code": code,
            "client_id": settings.youtube_client_id,
            "client_secret": settings.youtube_client_secret,
            "redirect_uri": settings.youtube_redirect_uri,
            "grant_type": "authorization_code",
        })
        tokens = token_response.json()
        access_token = tokens.get("access_token")
        if not access_token:
            logger.warning("youtube_token_exchange_failed", agent_id=agent_id, status=token_response.status_code)
            raise OAuthError("token_failed")

        channel_response = await client.get(
            CHANNELS_URL,
            params={"part": "snippet,statistics", "mine": "true"},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        items = channel_response.json().get("items") or []

    if not items:
        raise OAuthError("no_channel")

    fields = channel_fields(items[0])
    fields["youtube_verified_at"] = utcnow()
    fields["updated_at"] = utcnow()
    await update_agent(agent_id, fields)

    logger.info(
        "youtube_channel_linked",
        agent_id=agent_id,
        channel_id=fields["youtube_channel_id"],
        subscribers=fields["youtube_subscribers"],
    )
    return {"agent_id": agent_id, **fields}
