import asyncio
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from threatlens.config import settings
from threatlens.database import SessionLocal, init_db
from threatlens.api import routes
from threatlens.core.reputation import load_reputation_data
from threatlens.services.security_core import SecurityCore
from threatlens.services.storage import SecurityStorage

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"🚀 Starting {settings.APP_NAME}...")
    init_db()

    reputation = await asyncio.to_thread(load_reputation_data, settings)
    core = SecurityCore(reputation, SecurityStorage(SessionLocal))
    core.load_state()
    app.state.core = core
    logger.info("✓ Security engine ready")
    yield
    # Shutdown
    logger.info(f"👋 Shutting down {settings.APP_NAME}...")
    core.flush_stats()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan
)

# Browser extension and dashboard origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_origin_regex=r"^(chrome|moz)-extension://.*$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes.router, prefix=settings.API_PREFIX, tags=["Analysis"])

@app.get("/")
def root():
    return {
        "message": f"{settings.APP_NAME} API",
        "version": settings.VERSION,
        "docs": "/docs"
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("threatlens.main:app", host="0.0.0.0", port=8000, reload=False)
