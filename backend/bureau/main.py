"""
Credit Bureau Engine - FastAPI Application

Main entry point for the credit bureau backend.

Architecture:
- Record mutations (accounts, inquiries, public records, disputes) commit first
- ScoreCoordinator then re-derives the profile score from the full record set
- Score changes append to the profile's score history at the model layer
- Reports are frozen snapshots reachable by a random access token
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import LOG_LEVEL
from .database import init_db
from .errors import BureauError
from .routers import (
    accounts_router, disputes_router, inquiries_router, profiles_router,
    records_router, reports_router, stats_router, users_router,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Credit Bureau Engine",
    description="""
    Credit Bureau Engine - Scoring and Record Consistency

    Tracks consumer credit profiles, the accounts lenders report against
    them, inquiries, public records, disputes and report snapshots.

    ## Scoring
    Every recalculation starts from a base of 700 and applies payment
    history, utilization, history length, hard inquiries and open
    bankruptcies, clamped to 300-850.

    ## Key Principles
    - A mutation is committed before its recalculation runs
    - Score history grows only when the score actually changes
    - Reports never change after generation; reads only append to the access log
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BureauError)
async def bureau_error_handler(request: Request, exc: BureauError):
    if exc.status_code >= 500:
        logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(users_router)
app.include_router(profiles_router)
app.include_router(accounts_router)
app.include_router(inquiries_router)
app.include_router(records_router)
app.include_router(disputes_router)
app.include_router(reports_router)
app.include_router(stats_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Credit Bureau Engine",
        "version": "1.0.0",
        "description": "Credit scoring and record consistency",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m bureau.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
