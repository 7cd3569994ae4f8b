"""
Leadhub - API Backend
Lead intake, missed-call aggregation and contacts/newsletter sync over Directus

Run with:
    uvicorn leadhub.server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from leadhub.config import db, client, CORS_ORIGINS

# Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("leadhub")

app = FastAPI(
    title="Leadhub",
    description="Directus lead pipeline",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== ROUTES ====================

from leadhub.routes import webhooks, hooks, console

app.include_router(webhooks.router, prefix="/api")
app.include_router(hooks.router, prefix="/api")
app.include_router(console.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": "Leadhub API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP / SHUTDOWN ====================

from leadhub.services.pipeline import LeadPipeline
from leadhub.scheduler_service import TaskScheduler

scheduler = TaskScheduler()


@app.on_event("startup")
async def startup():
    # Indexes for the call feed polled by the bridge and the audit trail
    await db.calls.create_index("id", unique=True)
    await db.calls.create_index([("is_processed", 1), ("created_at", -1)])
    await db.event_log.create_index("entity_id")
    await db.event_log.create_index("created_at")
    logger.info("MongoDB indexes created")

    app.state.pipeline = LeadPipeline()
    scheduler.start(app.state.pipeline)
    logger.info("Leadhub started")


@app.on_event("shutdown")
async def shutdown():
    pipeline = getattr(app.state, "pipeline", None)
    if pipeline is not None:
        pipeline.stop()
    scheduler.stop()
    client.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
