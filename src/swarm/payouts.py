"""USD balances, admin funding and withdrawals."""

import uuid
from typing import Optional
import structlog

from .models import Withdrawal, utcnow
from .db import (
    get_agent_by_wallet,
    increment_agent,
    create_withdrawal,
    get_withdrawals_for_agent,
)
from .config import get_settings
from .auth import short_wallet
from .errors import NotFoundError, ValidationError
from .missions.create import load_owned_agent

logger = structlog.get_logger()


def _money(value) -> float:
    return round(float(value or 0), 2)


async def get_payout_summary(wallet: Optional[str]) -> dict:
    if not wallet:
        raise ValidationError("Wallet address required")
    agent = await get_agent_by_wallet(wallet)
    if not agent:
        raise NotFoundError("Agent not found")
    return {
        "usd_balance": _money(agent.get("usd_balance")),
        "wallet_address": agent["wallet_address"],
        "total_earned": _money(agent.get("total_earned")),
        "total_withdrawn": _money(agent.get("total_withdrawn")),
    }


async def fund_agent(wallet: Optional[str], amount) -> dict:
    """Credit USD to an agent (admin action)."""
    if not wallet:
        raise ValidationError("Wallet address required")
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("Amount must be a number")
    if amount <= 0:
        raise ValidationError("Amount must be positive")

    agent = await get_agent_by_wallet(wallet)
    if not agent:
        raise NotFoundError("Agent not found")

    updated = await increment_agent(
        agent["id"],
        {"usd_balance": amount, "total_earned": amount},
        updates={"updated_at": utcnow()},
    )

    logger.info("agent_funded", agent_id=agent["id"], wallet=short_wallet(wallet), amount=amount)

    return {
        "agent_id": agent["id"],
        "amount": amount,
        "usd_balance": _money(updated["usd_balance"]),
    }


async def request_withdrawal(agent_id: str, wallet: str, amount: Optional[float] = None) -> dict:
    """Withdraw USD from an agent's balance.

    Defaults to the full balance. The deduction is conditional on the
    balance still covering the amount, so concurrent requests cannot
    overdraw.
    """
    agent = await load_owned_agent(agent_id, wallet)
    balance = float(agent.get("usd_balance", 0) or 0)
    threshold = get_settings().withdrawal_threshold_usd
    withdraw_amount = float(amount) if amount else balance

    if withdraw_amount <= 0:
        raise ValidationError("Withdrawal amount must be positive")
    if withdraw_amount > balance:
        raise ValidationError(
            f"Insufficient balance. Have {balance:.2f}, requested {withdraw_amount:.2f}"
        )
    if withdraw_amount < threshold:
        raise ValidationError(
            f"Withdrawal below minimum threshold of {threshold:.2f}. Have {balance:.2f}"
        )

    updated = await increment_agent(
        agent_id,
        {"usd_balance": -withdraw_amount, "total_withdrawn": withdraw_amount},
        updates={"updated_at": utcnow()},
        conditions={"usd_balance": {"$gte": withdraw_amount}},
    )
    if not updated:
        raise ValidationError("Insufficient balance")

    withdrawal = Withdrawal(
        id=f"wd_{uuid.uuid4().hex[:8]}",
        agent_id=agent_id,
        amount=withdraw_amount,
    )
    await create_withdrawal(withdrawal.model_dump())

    remaining = _money(updated["usd_balance"])
    logger.info("withdrawal_requested", agent_id=agent_id, amount=withdraw_amount, remaining=remaining)

    return {
        "withdrawal": {
            "id": withdrawal.id,
            "agent_id": agent_id,
            "amount": withdraw_amount,
            "status": withdrawal.status,
            "requested_at": withdrawal.requested_at.isoformat(),
        },
        "remaining_balance": remaining,
        "message": (
            f"Withdrawal of {withdraw_amount:.2f} USD requested. "
            "Processing typically takes 3-5 business days."
        ),
    }


async def list_withdrawals(agent_id: str, wallet: str) -> dict:
    agent = await load_owned_agent(agent_id, wallet)
    withdrawals = await get_withdrawals_for_agent(agent_id)
    return {
        "agent": {
            "id": agent_id,
            "usd_balance": _money(agent.get("usd_balance")),
            "usd_withdrawal_threshold": get_settings().withdrawal_threshold_usd,
        },
        "withdrawals": withdrawals,
        "count": len(withdrawals),
    }
