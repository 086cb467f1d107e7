"""
FastAPI app entrypoint.

WhatsApp webhook for chat commands, admin deals API, and the deal expiry sweeper on a schedule.
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from groupbuy.api.routes import analytics, deals, whatsapp
from groupbuy.config import settings
from groupbuy.core.constants import DEAL_EXPIRY_JOB_ID
from groupbuy.scheduler.deal_expiry_job import run_deal_expiry_job
from groupbuy.services.messaging import build_messenger

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Scheduler: finalize expired deals every DEAL_EXPIRY_INTERVAL_SECONDS
_scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.scheduler_enabled:
        _scheduler.add_job(
            run_deal_expiry_job,
            "interval",
            seconds=settings.deal_expiry_interval_seconds,
            id=DEAL_EXPIRY_JOB_ID,
            kwargs={"messenger": app.state.messenger},
            max_instances=1,
            coalesce=True,
        )
        _scheduler.start()
        app.state.scheduler = _scheduler
        logger.info("Deal expiry job scheduled every %ss", settings.deal_expiry_interval_seconds)
    logger.info(
        "Backend ready (messaging=%s)",
        "twilio" if settings.twilio_configured() else "disabled",
    )
    yield
    if _scheduler.running:
        _scheduler.shutdown(wait=False)


app = FastAPI(title="Group Deals", version="0.1.0", lifespan=lifespan)
app.state.messenger = build_messenger(settings)

# CORS: admin dashboard dev origins + optional CORS_ORIGINS env (comma-separated)
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if settings.cors_origins:
    _cors_origins.extend(o.strip() for o in settings.cors_origins.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(whatsapp.router, tags=["whatsapp"])
app.include_router(deals.router, prefix="/api", tags=["deals"])
app.include_router(analytics.router, prefix="/api", tags=["analytics"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "Group Buying API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
