"""
main.py
-------
Entry point del Motor de Ganancias.

Expone:
  - /v1/risk          → evaluación de riesgo previa al cobro
  - /v1/fraud-events  → ingesta de eventos de fraude ya verificados
  - /v1/payouts       → cuenta de cobro, umbral, payout automático y
                        transferencia a wallet
  - /health
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.routers import fraud_events, payouts, risk
from app.core.config import settings
from app.core.exceptions import EarningsEngineException
from app.infrastructure.cache.redis_client import redis_manager
from app.infrastructure.database.session import init_db

logging.basicConfig(
    level  = settings.LOG_LEVEL.upper(),
    format = "%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ───────────────────────────────────────────────────────
    await redis_manager.connect()
    if settings.DEBUG:
        await init_db()
    yield
    # ── Shutdown ──────────────────────────────────────────────────────
    await redis_manager.disconnect()


app = FastAPI(
    title     = "Motor de Ganancias API",
    version   = "1.0.0",
    docs_url  = "/docs"  if settings.DEBUG else None,
    redoc_url = "/redoc" if settings.DEBUG else None,
    lifespan  = lifespan,
)

# ── Routers ───────────────────────────────────────────────────────────
app.include_router(risk.router)
app.include_router(fraud_events.router)
app.include_router(payouts.router)


# ── Handler global de excepciones ────────────────────────────────────
@app.exception_handler(EarningsEngineException)
async def earnings_exception_handler(
    request: Request, exc: EarningsEngineException
) -> JSONResponse:
    return JSONResponse(
        status_code = exc.status_code,
        content     = {"error": exc.message},
    )


# ── Health check ──────────────────────────────────────────────────────
@app.get("/health")
async def health_check():
    redis_ok = await redis_manager.ping()
    return {
        "status":      "ok",
        "environment": settings.ENVIRONMENT,
        "redis":       "ok" if redis_ok else "degraded",
    }
