# main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from . import __version__
from .config import Settings, load_settings
from .errors import LedgerError, StoreTimeout
from .ledger import VoteLedger, build_ledger
from .routes.admin_routes import router as admin_router
from .routes.election_routes import router as election_router
from .routes.feed_routes import router as feed_router
from .routes.vote_routes import vote_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = 1


async def ledger_error_handler(request: Request, exc: LedgerError):
    headers = None
    if isinstance(exc, StoreTimeout):
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.detail},
        headers=headers,
    )


def create_app(settings: Optional[Settings] = None, ledger: Optional[VoteLedger] = None) -> FastAPI:
    settings = settings or load_settings()
    ledger = ledger or build_ledger(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        ledger.close()

    app = FastAPI(title="Vote Ledger API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.ledger = ledger

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(LedgerError, ledger_error_handler)

    app.include_router(vote_router)
    app.include_router(election_router)
    app.include_router(admin_router)
    app.include_router(feed_router)

    @app.get("/", tags=["Root"])
    def read_root():
        return {"message": "Welcome to the Vote Ledger API"}

    @app.get("/health", tags=["Root"])
    def health_check():
        return {"status": "healthy", "store": settings.store_backend, "feed": settings.feed_transport}

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon():
        return Response(status_code=204)

    return app


app = create_app()
