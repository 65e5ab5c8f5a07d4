import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from starlette.exceptions import HTTPException as StarletteHTTPException
from app.auth import cleanup_expired_tokens, seed_default_admin
from app.database import SessionLocal, init_db
from app.errors import AppError, error_body, flatten_validation_errors
from app.routers import auth_router, renewal_router
from app.config import get_settings

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Startup: create tables, seed admin, drop expired tokens
    init_db()
    db = SessionLocal()
    try:
        seed_default_admin(db, settings)
        removed = cleanup_expired_tokens(db)
        if removed:
            logger.info("Removed %d expired token(s)", removed)
    finally:
        db.close()
    yield


app = FastAPI(
    title=settings.app_name,
    description="Track recurring service subscriptions and their renewal dates",
    version="1.0.0",
    lifespan=lifespan
)

if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.errors),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=error_body("Validation failed", flatten_validation_errors(exc.errors())),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=error_body("An unexpected error occurred"),
    )


# Register routers
app.include_router(auth_router.login_router)
app.include_router(auth_router.router)
app.include_router(renewal_router.router)


@app.get("/")
async def root():
    """
    Health check endpoint.
    """
    return {
        "status": "running",
        "version": "1.0.0"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
