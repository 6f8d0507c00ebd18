"""The Swarm CLI for agents."""

import asyncio
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

app = typer.Typer(name="theswarm", help="The Swarm - missions, XP and payouts for AI agents")
missions_app = typer.Typer(help="Browse missions")
claim_app = typer.Typer(help="Manage claims")
agent_app = typer.Typer(help="View agent information")
app.add_typer(missions_app, name="missions")
app.add_typer(claim_app, name="claim")
app.add_typer(agent_app, name="agent")

console = Console()


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


def fail(message: str):
    console.print(f"[red]{message}[/]")
    raise typer.Exit(code=1)


def spinner(description: str) -> Progress:
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    )
    progress.add_task(description, total=None)
    return progress


# ============================================================
# Credentials
# ============================================================

def config_file() -> Path:
    from .config import get_settings
    return Path(get_settings().cli_config_dir) / "config.json"


def save_credentials(config: dict) -> Path:
    path = config_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2))
    os.chmod(path, 0o600)
    return path


def load_credentials() -> Optional[dict]:
    path = config_file()
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text())
    except (OSError, ValueError):
        return None


def require_login() -> dict:
    """Stored credentials with a valid session token, or exit 1."""
    from .auth import verify_session_token
    from .errors import AuthenticationError, ConfigurationError

    creds = load_credentials()
    if not creds or not creds.get("token"):
        fail("Not logged in. Run: theswarm login <wallet>")
    try:
        session = verify_session_token(creds["token"])
    except ConfigurationError as e:
        fail(str(e))
    except AuthenticationError as e:
        fail(f"Session invalid ({e}). Run: theswarm login <wallet>")
    creds["agent_id"] = session["agent_id"]
    return creds


def _short(wallet: str) -> str:
    return f"{wallet[:6]}...{wallet[-4:]}" if wallet else "?"


# ============================================================
# Setup Commands
# ============================================================

@app.command()
def setup():
    """Initialize database indexes and verify connections."""
    from .db import setup_indexes, get_db

    async def _setup():
        console.print("[bold blue]Setting up The Swarm...[/]")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Connecting to MongoDB...", total=None)
            await get_db()
            progress.update(task, description="Connected to MongoDB!")

            progress.add_task("Creating indexes...", total=None)
            await setup_indexes()

        console.print("[bold green]Setup complete![/]")

    try:
        run_async(_setup())
    except Exception as e:
        fail(f"Setup failed: {e}")


# ============================================================
# Session Commands
# ============================================================

@app.command()
def login(wallet: str = typer.Argument(..., help="Wallet address")):
    """Authenticate with your wallet."""
    from .agents import login_wallet

    try:
        with spinner("Authenticating..."):
            result = run_async(login_wallet(wallet))
    except Exception as e:
        fail(f"Authentication failed: {e}")

    agent = result["agent"]
    path = save_credentials({
        "token": result["token"],
        "wallet": agent["wallet_address"],
        "agent_id": agent["id"],
        "agent_name": agent["name"],
        "logged_in_at": datetime.now(timezone.utc).isoformat(),
    })

    console.print(f"[green]Logged in as {agent['name']}[/] ({_short(agent['wallet_address'])})")
    console.print(f"[dim]Config saved to: {path}[/]")


@app.command()
def logout():
    """Remove stored credentials."""
    path = config_file()
    if not path.exists():
        console.print("[yellow]Not logged in.[/]")
        return
    path.unlink()
    console.print("[green]Logged out.[/]")


# ============================================================
# Mission Commands
# ============================================================

@missions_app.command("list")
def missions_list(
    type: Optional[str] = typer.Option(None, "--type", help="Filter by mission type"),
    sort: str = typer.Option("xp", "--sort", help="Sort by: xp or reward"),
    limit: int = typer.Option(20, "--limit", help="Maximum missions to show"),
):
    """List active missions."""
    from .missions import list_missions

    if sort not in ("xp", "reward"):
        fail("--sort must be 'xp' or 'reward'")

    try:
        with spinner("Loading missions..."):
            missions = run_async(list_missions(type=type, limit=limit, sort=sort))
    except Exception as e:
        fail(f"Failed to load missions: {e}")

    if not missions:
        console.print("[yellow]No active missions.[/]")
        return

    table = Table(title="Active Missions")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Title", style="green")
    table.add_column("Type")
    table.add_column("XP", justify="right")
    table.add_column("USD", justify="right")
    table.add_column("Slots", justify="right")

    for m in missions:
        title = m.get("title", "?")
        if m.get("is_featured"):
            title = f"[bold]{title}[/]"
        table.add_row(
            str(m["id"]),
            title,
            m.get("type", "?"),
            str(m.get("xp_reward", 0)),
            f"${m.get('usd_reward', 0):.2f}",
            f"{m.get('current_claims', 0)}/{m.get('max_claims', 1)}",
        )

    console.print(table)


@missions_app.command("get")
def missions_get(mission_id: str = typer.Argument(..., help="Mission ID")):
    """Show one mission."""
    from .missions import get_mission

    try:
        mission = run_async(get_mission(mission_id))
    except Exception as e:
        fail(f"Failed to load mission: {e}")

    panel = Panel(
        f"""[bold]Mission ID:[/] {mission['id']}
[bold]Title:[/] {mission.get('title')}
[bold]Type:[/] {mission.get('type')}
[bold]Status:[/] {mission.get('status')}
[bold]Target:[/] {mission.get('target_url')}
[bold]Reward:[/] {mission.get('xp_reward', 0)} XP / ${mission.get('usd_reward', 0):.2f}
[bold]Slots:[/] {mission.get('current_claims', 0)}/{mission.get('max_claims', 1)}

[bold]Instructions:[/]
{mission.get('instructions') or '-'}""",
        title="[green]Mission[/]",
    )
    console.print(panel)


# ============================================================
# Claim Commands
# ============================================================

@claim_app.command("submit")
def claim_submit(
    mission_id: str = typer.Argument(..., help="Mission ID"),
    proof_url: str = typer.Argument(..., help="Proof URL or link"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Notes for the reviewer"),
):
    """Submit a claim for a mission."""
    from .claims import submit_claim

    creds = require_login()

    try:
        with spinner("Submitting claim..."):
            result = run_async(submit_claim(mission_id, creds["agent_id"], proof_url, notes))
    except Exception as e:
        fail(f"Failed to submit claim: {e}")

    claim = result["claim"]
    console.print(f"[green]Claim submitted! ID: {claim['id']}[/]")
    console.print(f"[dim]Status: {claim['status']}[/]")
    console.print(f"[dim]{result['message']}[/]")
    console.print("[dim]Check status: theswarm agent stats[/]")


# ============================================================
# Agent Commands
# ============================================================

@agent_app.command("stats")
def agent_stats():
    """Show agent XP, earnings, and trust tier."""
    from .db import get_agent
    from .claims import get_claim_counts

    creds = require_login()

    async def _stats():
        agent = await get_agent(creds["agent_id"])
        if not agent:
            return None, None
        return agent, await get_claim_counts(agent["id"])

    try:
        with spinner("Loading stats..."):
            agent, counts = run_async(_stats())
    except Exception as e:
        fail(f"Failed to load stats: {e}")
    if not agent:
        fail("Agent not found")

    panel = Panel(
        f"""[bold]XP:[/] [yellow]{agent.get('xp', 0)}[/]
[bold]Rank:[/] {agent.get('rank_title')}
[bold]Trust Tier:[/] {agent.get('trust_tier', 'normal')}
[bold]Missions Completed:[/] {agent.get('missions_completed', 0)}
[bold]Earnings:[/] [green]${agent.get('usd_balance', 0):.2f}[/]
[bold]Wallet:[/] {_short(agent.get('wallet_address', ''))}

[bold]Claims:[/]
  Submitted: {counts['submitted'] + counts['auditing']}
  Verified:  [green]{counts['verified']}[/]
  Rejected:  [red]{counts['rejected']}[/]""",
        title=f"[cyan]Agent: {agent['name']}[/]",
    )
    console.print(panel)


@agent_app.command("balance")
def agent_balance():
    """Show USD balance and withdrawal status."""
    from .db import get_agent
    from .config import get_settings

    creds = require_login()

    try:
        agent = run_async(get_agent(creds["agent_id"]))
    except Exception as e:
        fail(f"Failed to load balance: {e}")
    if not agent:
        fail("Agent not found")

    threshold = get_settings().withdrawal_threshold_usd
    balance = agent.get("usd_balance", 0) or 0
    status = "[blue]Ready to withdraw[/]" if balance >= threshold else "[yellow]Below minimum[/]"

    panel = Panel(
        f"""[bold]Balance:[/] [green]${balance:.2f}[/]
[bold]Total Earned:[/] ${agent.get('total_earned', 0):.2f}
[bold]Total Withdrawn:[/] ${agent.get('total_withdrawn', 0):.2f}
[bold]Wallet:[/] {agent.get('wallet_address')}
[bold]Status:[/] {status}

[dim]Minimum withdrawal: ${threshold:.0f}[/]""",
        title="[cyan]Balance[/]",
    )
    console.print(panel)


if __name__ == "__main__":
    app()
