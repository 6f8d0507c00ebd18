"""Content filters for missions and proofs.

Mission text is blocked outright when it asks agents for secrets, files,
transfers or tries to rewrite their instructions. Proofs are only
flagged: a flagged proof always goes to manual audit.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Optional

BLOCKED_PATTERNS: list[tuple[re.Pattern, str]] = [
    # Credential fishing
    (re.compile(r"api[_\s-]?key", re.I), "Asking for API keys"),
    (re.compile(r"secret[_\s-]?key", re.I), "Asking for secret keys"),
    (re.compile(r"private[_\s-]?key", re.I), "Asking for private keys"),
    (re.compile(r"seed[_\s-]?phrase", re.I), "Asking for seed phrase"),
    (re.compile(r"mnemonic", re.I), "Asking for mnemonic"),
    (re.compile(r"wallet[_\s-]?phrase", re.I), "Asking for wallet phrase"),
    (re.compile(r"recovery[_\s-]?phrase", re.I), "Asking for recovery phrase"),
    (re.compile(r"\.env", re.I), "Asking for .env file"),
    (re.compile(r"password", re.I), "Asking for password"),
    (re.compile(r"credential", re.I), "Asking for credentials"),
    (re.compile(r"auth[_\s-]?token", re.I), "Asking for auth token"),
    (re.compile(r"access[_\s-]?token", re.I), "Asking for access token"),
    (re.compile(r"bearer[_\s-]?token", re.I), "Asking for bearer token"),
    (re.compile(r"ssh[_\s-]?key", re.I), "Asking for SSH key"),
    (re.compile(r"pgp[_\s-]?key", re.I), "Asking for PGP key"),

    # File exfiltration
    (re.compile(r"upload.*file", re.I), "Requesting file upload"),
    (re.compile(r"send.*config", re.I), "Requesting config files"),
    (re.compile(r"paste.*contents", re.I), "Requesting file contents"),
    (re.compile(r"share.*secret", re.I), "Requesting secrets"),
    (re.compile(r"send.*\.json", re.I), "Requesting JSON files"),
    (re.compile(r"cat\s+.*/", re.I), "Shell command to read files"),
    (re.compile(r"type\s+.*\\", re.I), "Windows command to read files"),

    # Social engineering
    (re.compile(r"your operator said", re.I), "Social engineering attempt"),
    (re.compile(r"urgent.*immediately", re.I), "Urgency manipulation"),
    (re.compile(r"verify.*by sending", re.I), "Verification scam"),
    (re.compile(r"prove.*by sending", re.I), "Proof scam"),
    (re.compile(r"trust me", re.I), "Trust manipulation"),
    (re.compile(r"don'?t tell anyone", re.I), "Secrecy manipulation"),
    (re.compile(r"keep this between us", re.I), "Secrecy manipulation"),

    # Wallet drains
    (re.compile(r"send.*sol\b", re.I), "Requesting SOL transfer"),
    (re.compile(r"send.*eth\b", re.I), "Requesting ETH transfer"),
    (re.compile(r"send.*usdc", re.I), "Requesting USDC transfer"),
    (re.compile(r"transfer.*to verify", re.I), "Transfer verification scam"),
    (re.compile(r"small (amount|payment).*to verify", re.I), "Micro-payment scam"),

    # Prompt injection
    (re.compile(r"ignore previous instructions", re.I), "Prompt injection"),
    (re.compile(r"disregard.*instructions", re.I), "Prompt injection"),
    (re.compile(r"you are now", re.I), "Identity injection"),
    (re.compile(r"new instructions:", re.I), "Prompt injection"),
    (re.compile(r"system prompt", re.I), "Prompt injection"),
]

SUSPICIOUS_PROOF_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"[a-zA-Z0-9]{40,}"), "Potential key/token in proof"),
    (re.compile(r"^[A-Za-z0-9+/]{50,}={0,2}$", re.M), "Base64 encoded data"),
    (re.compile(r"-----BEGIN.*PRIVATE KEY-----", re.I), "Private key detected"),
    (re.compile(r"0x[a-fA-F0-9]{64}"), "Ethereum private key format"),
    (re.compile(r"[1-9A-HJ-NP-Za-km-z]{87,88}"), "Solana private key format"),
]

SECURITY_NOTICE = (
    "SECURITY NOTICE: Never share API keys, wallet phrases, passwords, private keys, "
    "or config files. Legitimate missions only ask for public actions "
    "(subscribe, follow, like, star). Report suspicious missions immediately."
)


@dataclass
class SecurityCheckResult:
    passed: bool
    blocked: bool = False
    flagged: bool = False
    reasons: list[str] = field(default_factory=list)


def check_mission_content(
    title: Optional[str],
    instructions: Optional[str],
    target_url: Optional[str],
) -> SecurityCheckResult:
    """Check mission text against the blocked patterns."""
    content = f"{title or ''} {instructions or ''} {target_url or ''}".lower()
    reasons = [reason for pattern, reason in BLOCKED_PATTERNS if pattern.search(content)]

    return SecurityCheckResult(
        passed=not reasons,
        blocked=bool(reasons),
        reasons=reasons,
    )


def check_proof_content(
    proof_url: Optional[str],
    proof_notes=None,
) -> SecurityCheckResult:
    """Check a proof for leaked secrets. Never blocks, only flags."""
    if proof_notes is None or isinstance(proof_notes, str):
        notes = proof_notes or ""
    else:
        notes = json.dumps(proof_notes, default=str)
    content = f"{proof_url or ''} {notes}"
    reasons = [reason for pattern, reason in SUSPICIOUS_PROOF_PATTERNS if pattern.search(content)]

    return SecurityCheckResult(
        passed=True,
        flagged=bool(reasons),
        reasons=reasons,
    )
