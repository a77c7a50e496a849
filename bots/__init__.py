"""Discord and HTTP surfaces of the verification gateway.

`bots.runtime` wires the `veribot` core into a discord.py client and a
FastAPI app served by uvicorn on the same event loop.
"""

__all__ = ["config", "runtime", "verification", "web"]
