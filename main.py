from fastapi import FastAPI, Request
from fastapi.concurrency import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from api import router as api_router
from api.health import router as health_router
from api.services.user_service import UserServiceException
from db.engine import init_db
from db.exceptions import (
    CredentialsNotLoadedError,
    EntitlementError,
    UserNotFoundException,
    UserValidationError,
)
import logging
import os


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    filename=os.getenv("LOG_FILE", "log.txt"),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup code
    init_db()
    yield


app = FastAPI(title="Reportly Accounts", lifespan=lifespan)

# CORS Configuration - Allow same-origin by default, customize for production
allowed_origins = os.getenv("CORS_ORIGINS", "*").split(",")
if allowed_origins == ["*"]:
    logger.warning(
        "CORS is set to allow all origins (*). "
        "Set CORS_ORIGINS environment variable to restrict origins in production."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
    max_age=600,
)


# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


app.include_router(health_router)
app.include_router(api_router, prefix="/api")


@app.exception_handler(UserValidationError)
async def validation_exception_handler(request: Request, exc: UserValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": "Validation failed", "errors": exc.errors},
    )


@app.exception_handler(UserNotFoundException)
async def not_found_exception_handler(request: Request, exc: UserNotFoundException):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(EntitlementError)
async def entitlement_exception_handler(request: Request, exc: EntitlementError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(UserServiceException)
async def user_service_exception_handler(request: Request, exc: UserServiceException):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(CredentialsNotLoadedError)
async def credentials_exception_handler(request: Request, exc: CredentialsNotLoadedError):
    logger.error(f"Credential check failed on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Credential check unavailable"})
