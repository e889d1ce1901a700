"""ReadX server. Start it with: python app.py"""

import logging

import uvicorn
from fastapi import FastAPI

from readx.api.routes import router, load_config, init_store, shutdown

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("readx")

# ── App ──────────────────────────────────────────────────────────────────────

app = FastAPI(title="ReadX", version="0.1.0")

# API routes
app.include_router(router)


# ── Lifecycle ────────────────────────────────────────────────────────────────

@app.on_event("startup")
async def startup():
    config = load_config()
    init_store(config)
    logger.info("ReadX is ready. Post a document to /api/documents to start reading.")


@app.on_event("shutdown")
async def on_shutdown():
    await shutdown()


# ── Run ──────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
