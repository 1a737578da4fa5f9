from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.middleware.exceptions import register_exception_handlers
from app.routers import approval_config, approvals, health
from app.services.scheduler import lifespan

app = FastAPI(
    title="Memoria",
    description="Cemetery operations back office: approval workflow engine",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(approvals.router, prefix="/api/approvals", tags=["approvals"])
app.include_router(approval_config.router, prefix="/api/approval-config", tags=["approval-config"])
