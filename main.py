"""
CityFix API entry point.

Run with: uvicorn main:app  (install the "server" extra for uvicorn)
Workflow workers, when WORKFLOW_BACKEND=celery:
    celery -A cityfix.celery_app worker -Q workflows
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cityfix.config import Settings
from cityfix.database import Database
from cityfix.llm_service import build_completion_client
from cityfix.middleware.timing import timing_middleware
from cityfix.routes import generate_router, issues_router
from cityfix.service import IssueService
from cityfix.store import IssueStore
from cityfix.tasks import build_scheduler
from cityfix.workflow import IssueWorkflow, Sleep

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s | %(name)s | %(message)s",
)

logger = logging.getLogger("cityfix")


def create_app(
    settings: Optional[Settings] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Optional[Sleep] = None,
) -> FastAPI:
    """
    Build the application.

    The database, the HTTP client for the completion endpoint and the workflow
    scheduler are created once at startup and released once at shutdown.
    `http_transport` and `sleep` replace the network and the workflow timer.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: connect and wire dependencies
        database = Database(settings.database_url)
        await database.connect()
        http_client = httpx.AsyncClient(transport=http_transport)

        store = IssueStore(database)
        llm = build_completion_client(settings, http_client)
        workflow_kwargs = {"delay": settings.workflow_delay_seconds}
        if sleep is not None:
            workflow_kwargs["sleep"] = sleep
        workflow = IssueWorkflow(store, llm, **workflow_kwargs)
        scheduler = build_scheduler(settings, workflow)

        app.state.database = database
        app.state.scheduler = scheduler
        app.state.issue_service = IssueService(store, llm, workflow, scheduler)

        yield

        # Shutdown: let workflows finish, then release connections
        await scheduler.shutdown(settings.workflow_shutdown_grace)
        await http_client.aclose()
        await database.dispose()
        app.state.issue_service = None

    app = FastAPI(title="CityFix", lifespan=lifespan)

    app.middleware("http")(timing_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    app.include_router(issues_router)
    app.include_router(generate_router)
    return app


app = create_app()
