"""Agenda calendar API."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from agenda.core.config import settings
from agenda.core.database import create_db_and_tables
from agenda.core.errors import AgendaError
from agenda.core.scheduler import shutdown_scheduler, start_scheduler
from agenda.routes import calendars, events, reminders, rules

# Configure logging
settings.log_dir.mkdir(parents=True, exist_ok=True)
log_file = settings.log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting Agenda application")
    create_db_and_tables()
    start_scheduler()
    yield
    # Shutdown
    shutdown_scheduler()
    logger.info("Agenda application shut down")


app = FastAPI(
    title=settings.app_name,
    description="Calendar backend with recurring series, occurrence overrides, reminders and ICS import/export",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for external access
origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AgendaError)
async def agenda_error_handler(request: Request, exc: AgendaError):
    """Report domain errors as ``{"detail": ...}`` like HTTPException does."""
    logger.debug(f"{request.method} {request.url.path} rejected: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Include routers; reminders first so /events/reminders is not read as an event id
app.include_router(calendars.router)
app.include_router(reminders.router)
app.include_router(events.router)
app.include_router(rules.router)


@app.get("/")
async def root(request: Request):
    """Redirect root to the API docs."""
    rp = request.scope.get("root_path", "")
    return RedirectResponse(f"{rp}/docs")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
