# comicsync/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .api import bookmark as bookmark_router
from .api import library as library_router
from .api import progress as progress_router
from .api import reading as reading_router
from .api import statistics as statistics_router
from .api import sync as sync_router
from .core.config import get_settings
from .core.errors import ConcurrencyConflictError, InvalidRatingError
from .core.logging import configure_logging, ensure_request_id, request_id_ctx_var
from .database import engine
from .models import Base
from .schemas.error import ErrorResponse

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # schema is owned by the models; production databases are expected to be pre-created
    if settings.environment == "local":
        Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="ComicSync API", version="0.1.0", lifespan=lifespan)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Authorization", "Content-Type", "Accept", "Origin", "X-Request-ID"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = ensure_request_id(request.headers.get("X-Request-ID"))
    token = request_id_ctx_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx_var.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(reading_router.router)
app.include_router(progress_router.router)
app.include_router(bookmark_router.router)
app.include_router(library_router.router)
app.include_router(sync_router.router)
app.include_router(statistics_router.router)


@app.get("/health", tags=["meta"])
def health():
    return {"status": "ok", "environment": settings.environment}


@app.get("/health/db", tags=["meta"])
def health_db():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "ok", "database": "reachable"}
    except Exception as e:
        logger.warning("database health check failed: %s", e)
        return {"status": "error", "database": "unreachable", "detail": str(e)}


# Global error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(detail=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content=ErrorResponse(detail="Validation Error").model_dump())


@app.exception_handler(InvalidRatingError)
async def invalid_rating_handler(request: Request, exc: InvalidRatingError):
    return JSONResponse(status_code=422, content=ErrorResponse(detail=str(exc)).model_dump())


@app.exception_handler(ConcurrencyConflictError)
async def concurrency_conflict_handler(request: Request, exc: ConcurrencyConflictError):
    logger.warning("request abandoned after write conflicts: %s", exc)
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(detail="Concurrent update conflict, please retry").model_dump(),
        headers={"Retry-After": "1"},
    )
