from __future__ import annotations
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from threading import Lock

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ============================================================
# 🪵 Logging Setup
# ============================================================
logging.basicConfig(
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    level=logging.INFO,
)
logger = logging.getLogger("citeqa.app")

# ============================================================
# 📦 Core Imports (Settings + Dependency Injection)
# ============================================================
from citeqa.config import settings
from citeqa.container import build_container

# ============================================================
# 🌐 Routers
# ============================================================
from citeqa.router import chat as chat_router_module
from citeqa.router import index_router as index_router_module
from citeqa.router.health import router as health_router


# ============================================================
# ⚙️ Global State & Application Status
# ============================================================
class AppState:
    def __init__(self):
        self.container = None
        self.prewarm_task = None
        self.startup_time = time.time()
        self.prewarm_status = "not_started"  # not_started, building, complete, failed
        self.prewarm_error = None
        self.prewarm_stats = None
        self.lock = Lock()

    def set_prewarm(self, status_: str, stats: dict | None = None, error: str | None = None):
        with self.lock:
            self.prewarm_status = status_
            if stats is not None:
                self.prewarm_stats = stats
            if error is not None:
                self.prewarm_error = error

    def get_status(self):
        with self.lock:
            return {
                "prewarm_status": self.prewarm_status,
                "prewarm_error": self.prewarm_error,
                "prewarm_stats": self.prewarm_stats,
                "uptime_seconds": time.time() - self.startup_time,
            }


app_state = AppState()


async def _background_prewarm():
    app_state.set_prewarm("building")
    logger.info("🔄 Starting background prewarm...")
    try:
        stats = await app_state.container.indexing_service.prewarm()
    except Exception as e:
        logger.error(f"❌ Prewarm failed: {e}")
        app_state.set_prewarm("failed", error=str(e))
        return
    app_state.set_prewarm("complete", stats=stats)
    logger.info(f"✅ Background prewarm complete | indexed={stats['indexed']} | skipped={stats['skipped']}")


# ============================================================
# 🚀 Startup / Shutdown Lifecycle
# ============================================================
@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("🚀 Initializing citation QA API...")
    app_state.container = build_container(settings)

    chat_router_module.qa_service = app_state.container.qa_service
    chat_router_module.documents = app_state.container.documents
    index_router_module.indexing_service = app_state.container.indexing_service

    if settings.prewarm_on_startup:
        app_state.prewarm_task = asyncio.create_task(_background_prewarm())
    logger.info("🎯 API is ready and accepting requests")

    try:
        yield
    finally:
        if app_state.prewarm_task and not app_state.prewarm_task.done():
            app_state.prewarm_task.cancel()
            logger.info("🛑 Cancelled background prewarm")
        await app_state.container.service.aclose()
        logger.info("🧹 Application shutdown complete")


# ============================================================
# 🌍 FastAPI App Definition
# ============================================================
app = FastAPI(
    title="Citation QA API",
    description="Questions over selected documents with reconciled source quotes",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def _validation_error(_: Request, exc: RequestValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc.errors())})


app.include_router(health_router)
app.include_router(chat_router_module.router)
app.include_router(index_router_module.router)


@app.get("/status")
async def get_app_status():
    state = app_state.get_status()
    container = app_state.container
    return {
        "mode": settings.retrieval_mode,
        "aggregate_scope": settings.aggregate_scope,
        "cached_indexes": len(container.cache) if container else 0,
        "timestamp": time.time(),
        **state,
    }


# ============================================================
# 🏁 Entrypoint
# ============================================================
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting citation QA API on port 8080...")
    uvicorn.run("citeqa.main:app", host="0.0.0.0", port=8080, reload=False, log_config=None)
