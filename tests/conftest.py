"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from deliverable_approval.config import ApprovalSettings
from deliverable_approval.db.models import ClientDeliverable, ClientPortal
from deliverable_approval.db.session import build_engine, build_session_factory, init_db
from deliverable_approval.engine.controller import WorkflowController
from deliverable_approval.engine.models import Actor, RequestContext


@dataclass(frozen=True)
class Seeded:
    token: str
    portal_id: str
    deliverable_id: str


@pytest.fixture
def settings(tmp_path: Path) -> ApprovalSettings:
    """Settings pointing at a throwaway SQLite file."""
    return ApprovalSettings(
        _env_file=None,
        APPROVAL_DATABASE_URL=f"sqlite:///{tmp_path / 'approval.db'}",
        APPROVAL_SQLITE_BUSY_TIMEOUT_SECONDS=10,
    )


@pytest.fixture
def engine(settings: ApprovalSettings) -> Iterator[Engine]:
    engine = build_engine(settings)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sessions(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture
def controller(sessions: sessionmaker[Session], settings: ApprovalSettings) -> WorkflowController:
    return WorkflowController(sessions, settings)


@pytest.fixture
def seeded(sessions: sessionmaker[Session]) -> Seeded:
    """An active client portal with one delivered artefact."""
    with sessions.begin() as session:
        portal = ClientPortal(
            token="portal-token-123",
            client_name="Acme Corp",
            client_email="client@acme.test",
            is_active=True,
        )
        session.add(portal)
        session.flush()
        deliverable = ClientDeliverable(portal_id=portal.id, title="Homepage mockup")
        session.add(deliverable)
        session.flush()
        return Seeded(token=portal.token, portal_id=portal.id, deliverable_id=deliverable.id)


@pytest.fixture
def actor() -> Actor:
    return Actor(actor_type="client", name="Acme Corp", email="client@acme.test")


@pytest.fixture
def context() -> RequestContext:
    return RequestContext(ip_address="203.0.113.7", user_agent="pytest-agent/1.0")


@pytest.fixture
def load_deliverable(sessions: sessionmaker[Session]) -> Callable[[str], ClientDeliverable]:
    """Read the deliverable back in a fresh session."""

    def _load(deliverable_id: str) -> ClientDeliverable:
        with sessions() as session:
            deliverable = session.get(ClientDeliverable, deliverable_id)
            assert deliverable is not None
            session.expunge(deliverable)
            return deliverable

    return _load
