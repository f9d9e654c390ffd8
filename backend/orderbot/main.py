# /orderbot/main.py

import os
import time
import uvicorn
from fastapi import FastAPI, Request

from orderbot.config.settings import settings
from orderbot.utils.lifecycle import lifespan
from orderbot.utils.metrics import response_time_histogram
from orderbot.routes import admin, interactions, public

# Initialize the FastAPI application
app = FastAPI(
    title="Order Checklist Bot",
    version="1.0.0",
    description="Discord order checklist backed by the order sheet",
    lifespan=lifespan,
    openapi_url="/openapi.json" if settings.environment != "production" else None,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url=None,
)


@app.middleware("http")
async def performance_middleware(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response_time_histogram.labels(endpoint=request.url.path).observe(process_time)
    response.headers["X-Process-Time"] = str(process_time)
    return response


# --- API Routers ---
app.include_router(public.router)
app.include_router(interactions.router)
app.include_router(admin.router)

# --- Main Entry Point for Uvicorn ---
if __name__ == "__main__":
    port = int(os.getenv("PORT", "10000"))
    host = os.getenv("HOST", "0.0.0.0")

    # A single worker: the order cache lives in this process.
    uvicorn.run(
        "orderbot.main:app",
        host=host,
        port=port,
        reload=settings.environment == "development",
        workers=1,
    )
