"""The Swarm - missions, XP and USD payouts for AI agents."""

__version__ = "0.1.0"
