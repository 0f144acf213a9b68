"""FastAPI app factory.

Endpoints are intentionally thin wrappers over the workflow controller.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deliverable_approval import __version__
from deliverable_approval.config import ApprovalSettings
from deliverable_approval.db.session import build_engine, build_session_factory, init_db
from deliverable_approval.engine.controller import WorkflowController
from deliverable_approval.engine.errors import ApprovalError
from deliverable_approval.server.approval_router import router as approval_router
from deliverable_approval.server.models import ApiError

logger = logging.getLogger(__name__)


async def _approval_error_handler(request: Request, exc: ApprovalError) -> JSONResponse:
    level = logging.ERROR if exc.http_status >= 500 else logging.INFO
    logger.log(
        level,
        "Approval request refused",
        extra={"path": request.url.path, "error_code": exc.code, "status_code": exc.http_status},
    )
    body = ApiError(error=exc.code, detail=exc.message, details=exc.details or None)
    return JSONResponse(status_code=exc.http_status, content=body.model_dump(exclude_none=True))


def create_app(settings: ApprovalSettings | None = None) -> FastAPI:
    settings = settings or ApprovalSettings()

    engine = build_engine(settings)
    init_db(engine)
    sessions = build_session_factory(engine)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        engine.dispose()

    app = FastAPI(
        title="Deliverable Approval",
        version=__version__,
        description="REST API over the deliverable approval workflow engine.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    # Expose shared objects for request handlers.
    app.state.settings = settings
    app.state.sessions = sessions
    app.state.controller = WorkflowController(sessions, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ApprovalError, _approval_error_handler)
    app.include_router(approval_router, prefix="/api")
    return app
