"""Configuration settings for The Swarm.

## Trust and audit defaults

Every proof submission is audited with a probability that depends on the
submitting agent's trust tier:

- trusted: 5%
- normal: 10%
- probation: 50%
- blacklist / banned: 100%

Each rejected claim adds one fraud flag. One flag puts an agent on
probation, two on the blacklist, three bans it.

## Economy defaults

- New agents receive a 100 XP genesis bonus on registration.
- Referrers receive 50 XP per referred agent.
- Mission creators escrow max_claims * xp_reward XP up front.
- USD withdrawals below $10 are refused.
"""

from functools import lru_cache
from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Swarm settings from environment."""

    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "theswarm"

    # Sessions
    session_secret: str = ""  # Required: at least 32 characters, no default
    session_expiry_seconds: int = 7 * 24 * 60 * 60
    challenge_expiry_seconds: int = 300
    auth_enabled: bool = True
    admin_wallets: str = ""  # Comma separated, always treated as admin

    # Public URL (OAuth redirects)
    app_url: str = "https://jointheaiswarm.com"

    # YouTube OAuth
    youtube_client_id: str = ""
    youtube_client_secret: str = ""

    # Economy
    genesis_bonus_xp: int = 100
    referral_bonus_xp: int = 50
    withdrawal_threshold_usd: float = 10.0

    # Moderation
    mission_flag_pause_threshold: int = 3

    # Listing defaults
    leaderboard_default_limit: int = 20
    admin_page_size: int = 20

    # CLI
    cli_config_dir: Path = Path.home() / ".theswarm"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def admin_wallet_list(self) -> list[str]:
        return [w.strip().lower() for w in self.admin_wallets.split(",") if w.strip()]

    @property
    def youtube_redirect_uri(self) -> str:
        return f"{self.app_url.rstrip('/')}/api/auth/youtube/callback"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
