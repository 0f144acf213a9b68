"""FastAPI adapter for the approval engine.

Design intent:
- Keep workflow rules in `deliverable_approval.engine.*`
- Keep transport concerns (routing, portal lookup, request metadata, CORS) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from deliverable_approval.server.app import create_app
