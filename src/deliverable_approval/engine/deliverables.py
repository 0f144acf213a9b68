"""Status propagation to the externally owned deliverable.

Only the workflow controller writes the deliverable's visible status, and only
through this gateway, inside the controller's transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from deliverable_approval.db.models import ClientDeliverable

from .errors import DeliverableNotFound

logger = logging.getLogger(__name__)

STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_REVISION_REQUESTED = "revision_requested"


class DeliverableGateway:
    def __init__(self, session: Session) -> None:
        self._session = session

    def _load(self, deliverable_id: str) -> ClientDeliverable:
        deliverable = self._session.get(ClientDeliverable, deliverable_id)
        if deliverable is None:
            raise DeliverableNotFound(f"Deliverable {deliverable_id} not found")
        return deliverable

    def ensure_exists(self, deliverable_id: str) -> None:
        self._load(deliverable_id)

    def enable_workflow(self, deliverable_id: str) -> None:
        self._load(deliverable_id).workflow_enabled = True

    def mark_approved(self, deliverable_id: str, *, at: datetime, by: str) -> None:
        deliverable = self._load(deliverable_id)
        deliverable.status = STATUS_APPROVED
        deliverable.approved_at = at
        deliverable.approved_by = by
        logger.info("Deliverable approved", extra={"deliverable_id": deliverable_id})

    def mark_rejected(self, deliverable_id: str) -> None:
        self._load(deliverable_id).status = STATUS_REJECTED
        logger.info("Deliverable rejected", extra={"deliverable_id": deliverable_id})

    def mark_revision_requested(self, deliverable_id: str, *, feedback: str | None) -> None:
        deliverable = self._load(deliverable_id)
        deliverable.status = STATUS_REVISION_REQUESTED
        deliverable.client_feedback = feedback
        logger.info("Deliverable revision requested", extra={"deliverable_id": deliverable_id})
