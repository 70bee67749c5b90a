from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from homecare.api.main import api_router
from homecare.core.config import settings
from homecare.core.db import engine, init_db
from homecare.core.logging import logger
from homecare.services.errors import BookingEngineError


@asynccontextmanager
async def lifespan(app: FastAPI):
    with Session(engine) as session:
        init_db(session)
    logger.info({
        "event_type": "application",
        "event_name": "startup",
        "environment": settings.ENVIRONMENT,
    })
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

if settings.all_cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.all_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(BookingEngineError)
async def booking_engine_exception_handler(request: Request, exc: BookingEngineError):
    """Map domain errors to their HTTP status with a stable code for the UI."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log({
        "event_type": "api_error",
        "event_name": exc.code,
        "path": request.url.path,
        "message": exc.message,
    })
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": {"code": exc.code, "message": exc.message}},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(api_router, prefix=settings.API_V1_STR)
