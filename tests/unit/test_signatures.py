"""Unit tests for signature payload validation and the append-only store."""

from __future__ import annotations

import base64

import pytest
from sqlalchemy import select

from deliverable_approval.db.models import ApprovalSignature
from deliverable_approval.engine.errors import ImmutableRecordError, InvalidSignaturePayload
from deliverable_approval.engine.models import SignatureMethod, WorkflowType
from deliverable_approval.engine.signatures import (
    SignatureDraft,
    SignatureStore,
    validate_signature_payload,
)

PNG_URI = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\nfake").decode()


@pytest.mark.parametrize(
    ("data", "method"),
    [
        (PNG_URI, SignatureMethod.DRAW),
        ("Jane Q. Client", SignatureMethod.TYPE),
        ("https://files.example.com/signatures/abc.pdf", SignatureMethod.UPLOAD),
        ("s3://bucket/signatures/abc.png", SignatureMethod.UPLOAD),
        (PNG_URI, SignatureMethod.UPLOAD),
    ],
)
def test_valid_payloads(data: str, method: SignatureMethod) -> None:
    validate_signature_payload(data, method, max_bytes=10_000)


@pytest.mark.parametrize(
    ("data", "method"),
    [
        ("", SignatureMethod.DRAW),
        ("   ", SignatureMethod.TYPE),
        ("Jane Q. Client", SignatureMethod.DRAW),
        ("data:text/plain;base64,aGVsbG8=", SignatureMethod.DRAW),
        ("data:image/png;base64,not base64!!", SignatureMethod.DRAW),
        ("x" * 201, SignatureMethod.TYPE),
        ("ftp://example.com/sig.png", SignatureMethod.UPLOAD),
        ("https://example.com/my sig.png", SignatureMethod.UPLOAD),
    ],
)
def test_invalid_payloads(data: str, method: SignatureMethod) -> None:
    with pytest.raises(InvalidSignaturePayload):
        validate_signature_payload(data, method, max_bytes=10_000)


def test_oversized_payload_is_rejected() -> None:
    with pytest.raises(InvalidSignaturePayload) as exc_info:
        validate_signature_payload("A" * 101, SignatureMethod.TYPE, max_bytes=100)
    assert exc_info.value.details == {"max_bytes": 100}


def test_append_captures_request_metadata(
    controller, sessions, seeded, actor, context
) -> None:
    view = controller.create_or_replace_workflow(
        deliverable_id=seeded.deliverable_id, workflow_type=WorkflowType.SIMPLE, actor=actor
    )
    with sessions.begin() as session:
        signature_id = SignatureStore(session, max_bytes=10_000).append(
            SignatureDraft(
                workflow_id=view.id,
                step_id=None,
                signer=actor,
                signature_data="Jane Q. Client",
                signature_method=SignatureMethod.TYPE,
                context=context,
            )
        )

    with sessions() as session:
        (row,) = SignatureStore(session, max_bytes=10_000).list_for(view.id)
        assert row.id == signature_id
        assert row.signer_name == "Acme Corp"
        assert row.signer_email == "client@acme.test"
        assert row.ip_address == "203.0.113.7"
        assert row.user_agent == "pytest-agent/1.0"
        assert row.step_id is None


def test_signatures_cannot_be_updated(controller, sessions, seeded, actor, context) -> None:
    view = controller.create_or_replace_workflow(
        deliverable_id=seeded.deliverable_id, workflow_type=WorkflowType.SIMPLE, actor=actor
    )
    controller.attach_signature(
        workflow_id=view.id,
        signature_data="Jane Q. Client",
        signature_method=SignatureMethod.TYPE,
        actor=actor,
        context=context,
    )

    with pytest.raises(ImmutableRecordError):
        with sessions.begin() as session:
            row = session.scalars(select(ApprovalSignature)).one()
            row.signature_data = "Somebody Else"

    with sessions() as session:
        assert session.scalars(select(ApprovalSignature)).one().signature_data == "Jane Q. Client"
