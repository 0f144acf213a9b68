"""Relational persistence for workflows, steps, signatures and history."""

from __future__ import annotations

__all__ = ["Base", "build_engine", "build_session_factory", "init_db"]

from deliverable_approval.db.base import Base
from deliverable_approval.db.session import build_engine, build_session_factory, init_db
