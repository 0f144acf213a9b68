"""Portal access resolution.

Token validity belongs to the surrounding CRM; this module only turns an
active portal token into the acting client and checks that the deliverable
belongs to that portal.
"""

from __future__ import annotations

from fastapi import HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from deliverable_approval.db.models import ClientDeliverable, ClientPortal
from deliverable_approval.engine.models import Actor, RequestContext


def resolve_portal_actor(
    sessions: sessionmaker[Session], *, token: str, deliverable_id: str
) -> Actor:
    with sessions() as session:
        portal = session.scalars(
            select(ClientPortal).where(ClientPortal.token == token)
        ).one_or_none()
        if portal is None or not portal.is_active:
            raise HTTPException(status_code=404, detail="Portal not found")

        deliverable = session.scalars(
            select(ClientDeliverable).where(
                ClientDeliverable.id == deliverable_id,
                ClientDeliverable.portal_id == portal.id,
            )
        ).one_or_none()
        if deliverable is None:
            raise HTTPException(status_code=404, detail="Deliverable not found")

        return Actor(actor_type="client", name=portal.client_name, email=portal.client_email)


def request_context(request: Request) -> RequestContext:
    """Audit metadata from the transport: first forwarded hop, then the peer."""

    forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    ip_address = (
        forwarded
        or request.headers.get("x-real-ip", "").strip()
        or (request.client.host if request.client else "")
        or "unknown"
    )
    user_agent = request.headers.get("user-agent", "").strip() or "unknown"
    return RequestContext(ip_address=ip_address, user_agent=user_agent)
