"""Signature store: durable, append-only capture of signing events."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from deliverable_approval.db.models import ApprovalSignature

from .errors import InvalidSignaturePayload
from .models import Actor, RequestContext, SignatureMethod

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<body>.+)$", re.DOTALL)
_DRAW_MIME_TYPES = {"image/png", "image/jpeg", "image/svg+xml"}
_UPLOAD_SCHEMES = ("https://", "http://", "s3://")
MAX_TYPED_SIGNATURE_CHARS = 200


@dataclass(frozen=True, slots=True)
class SignatureDraft:
    workflow_id: str
    step_id: str | None
    signer: Actor
    signature_data: str
    signature_method: SignatureMethod
    context: RequestContext


def _decode_data_uri(data: str) -> tuple[str, bytes] | None:
    match = _DATA_URI_RE.match(data)
    if match is None:
        return None
    try:
        body = base64.b64decode(match.group("body"), validate=True)
    except (binascii.Error, ValueError):
        return None
    return match.group("mime"), body


def validate_signature_payload(
    data: str, method: SignatureMethod, *, max_bytes: int
) -> None:
    """Reject payloads that are empty, oversized or do not fit their method."""

    if not data or not data.strip():
        raise InvalidSignaturePayload("Signature data must not be empty")
    if len(data.encode("utf-8")) > max_bytes:
        raise InvalidSignaturePayload(
            f"Signature data exceeds {max_bytes} bytes",
            details={"max_bytes": max_bytes},
        )

    if method is SignatureMethod.DRAW:
        decoded = _decode_data_uri(data)
        if decoded is None or decoded[0] not in _DRAW_MIME_TYPES or not decoded[1]:
            raise InvalidSignaturePayload(
                "Drawn signatures must be a base64 image data URI",
                details={"allowed_mime_types": sorted(_DRAW_MIME_TYPES)},
            )
        return

    if method is SignatureMethod.TYPE:
        if len(data.strip()) > MAX_TYPED_SIGNATURE_CHARS:
            raise InvalidSignaturePayload(
                f"Typed signatures are limited to {MAX_TYPED_SIGNATURE_CHARS} characters"
            )
        return

    if data.startswith(_UPLOAD_SCHEMES):
        if any(ch.isspace() for ch in data):
            raise InvalidSignaturePayload("Uploaded signature reference contains whitespace")
        return
    decoded = _decode_data_uri(data)
    if decoded is None or not decoded[1]:
        raise InvalidSignaturePayload(
            "Uploaded signatures must be a file reference or a base64 data URI"
        )


class SignatureStore:
    """Append-only access to signatures. There is no update or delete."""

    def __init__(self, session: Session, *, max_bytes: int) -> None:
        self._session = session
        self._max_bytes = max_bytes

    def append(self, draft: SignatureDraft) -> str:
        validate_signature_payload(
            draft.signature_data, draft.signature_method, max_bytes=self._max_bytes
        )
        row = ApprovalSignature(
            workflow_id=draft.workflow_id,
            step_id=draft.step_id,
            signer_type=draft.signer.actor_type,
            signer_name=draft.signer.name,
            signer_email=draft.signer.email,
            signature_data=draft.signature_data,
            signature_method=draft.signature_method.value,
            ip_address=draft.context.ip_address,
            user_agent=draft.context.user_agent,
        )
        self._session.add(row)
        self._session.flush()
        return row.id

    def list_for(self, workflow_id: str) -> list[ApprovalSignature]:
        stmt = (
            select(ApprovalSignature)
            .where(ApprovalSignature.workflow_id == workflow_id)
            .order_by(ApprovalSignature.signed_at.desc(), ApprovalSignature.id)
        )
        return list(self._session.scalars(stmt))
