"""
LineDevs Discord Bot - Roblox verification gate and metered AI assistant.

This package provides:
- Roblox account linking (pre-linked registry or profile-key verification)
- A daily per-user quota for the Gemini assistant channel
- Denylist moderation with automatic timeouts for repeat offenders
- A small status web server for keep-alive pings and dashboard data

Single guild, single process. Core logic (linking, ledger, moderation)
has no discord.py imports; main.py is the only module that talks to the
gateway.
"""

__version__ = "0.1.0"
