from __future__ import annotations

import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..core.settings import Settings
from .routers import flows as r_flows
from .routers import health as r_health

settings = Settings.from_env()

app = FastAPI(title="SAP Flow Compiler", version="0.1.0")

# CORS for the flow editor dev server; adjust via env ALLOW_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(r_health.router)
app.include_router(r_flows.router)


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8001"))
    uvicorn.run("sapflow.api.main:app", host=host, port=port, reload=False)
