from __future__ import annotations

# Entrypoint module for ASGI servers
# Exposes the FastAPI app constructed in cinescan.api.routes
from cinescan.api.routes import app

__all__ = ["app"]
