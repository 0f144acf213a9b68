"""Deliverable Approval Engine.

Lets an external client formally approve, reject or request revision of a
delivered artefact through an ordered chain of sign-off steps, with signature
capture and an append-only audit trail.
"""

__version__ = "0.1.0"

from deliverable_approval.config import ApprovalSettings

__all__ = ["__version__", "ApprovalSettings"]
