import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from keygate.config import settings
from keygate.core.errors import WalletAuthError
from keygate.database import AsyncSessionLocal
from keygate.routers import admin, auth, wallet_auth
from keygate.services.nonce_store import purge_stale_nonces

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("keygate")

scheduler = AsyncIOScheduler()


async def sweep_nonces():
    """Backstop for the inline sweep in issue_nonce when nobody logs in."""
    async with AsyncSessionLocal() as db:
        removed = await purge_stale_nonces(db)
        await db.commit()
    if removed:
        logger.info("scheduled sweep purged %d stale nonces", removed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler.add_job(sweep_nonces, "interval", hours=1)
    scheduler.start()
    yield
    scheduler.shutdown()

app = FastAPI(title="Keygate Wallet Auth API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WalletAuthError)
async def wallet_auth_error_handler(request: Request, exc: WalletAuthError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unexpected error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})

app.include_router(wallet_auth.router)
app.include_router(auth.router)
app.include_router(admin.router)

@app.get("/health")
async def health():
    return {"status": "ok"}
