from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio
import logging

from database import Base, engine, SessionLocal, get_settings
from api import raffles, oracle, ledger
from core import keeper

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 建立資料表，視設定啟動 keeper
    Base.metadata.create_all(bind=engine)

    keeper_task = None
    if settings.keeper_enabled:
        keeper_task = asyncio.create_task(keeper.run_forever(
            SessionLocal,
            settings.keeper_interval_seconds,
            auto_fulfill=settings.keeper_auto_fulfill,
        ))
    yield
    # Shutdown: 停止 keeper
    if keeper_task is not None:
        keeper_task.cancel()
        try:
            await keeper_task
        except asyncio.CancelledError:
            logger.info("Keeper stopped")


app = FastAPI(
    title="Verifiable Raffle API",
    description="Recurring raffle with oracle-driven winner selection",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(raffles.router)
app.include_router(oracle.router)
app.include_router(ledger.router)


@app.get("/")
def root():
    return {"message": "Verifiable Raffle API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
