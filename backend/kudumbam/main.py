"""
Kudumbam — FastAPI Application Entry Point
Community membership backend: invitations, onboarding, family profiles,
groups, announcements, help posts, password resets and the admin panel.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kudumbam.config import get_settings
from kudumbam.core.database import get_database
from kudumbam.core.errors import ApiError
from kudumbam.services.invitations import InvitationService
from kudumbam.services.sessions import SessionManager
from kudumbam.utils.rate_limiter import RateLimiter
from kudumbam.utils.logger import logger, set_level


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    settings = get_settings()
    set_level()
    logger.info(f"🚀 Kudumbam starting in {settings.app_env} mode...")
    db = get_database()
    logger.info(f"🗄️ Database: {db.db_path}")
    logger.info(f"🧹 Expired sessions removed: {SessionManager(db).clean_expired()}")
    logger.info(f"✉️ Stale invitations expired: {InvitationService(db).expire_stale()}")
    logger.info(f"🌐 CORS origins: {', '.join(settings.cors_origins) or 'none'}")

    yield

    logger.info("👋 Kudumbam shutting down...")


settings = get_settings()

app = FastAPI(
    title="Kudumbam",
    description="Invitation-only community membership: onboarding, family profiles, help posts and admin tools.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Middleware Stack ---
app.add_middleware(RateLimiter, requests_per_minute=settings.rate_limit_per_minute)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error Handlers ---
@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


# --- Health Check ---
@app.get("/", tags=["Health"])
def root():
    return {"status": "healthy", "service": "Kudumbam", "version": "1.0.0"}


@app.get("/health", tags=["Health"])
def health_check():
    return {
        "status": "healthy",
        "environment": settings.app_env,
        "database": str(get_database().db_path),
    }


# --- Register Routers ---
from kudumbam.api import auth, onboarding, invitations, help_posts, groups, reference, admin

app.include_router(auth.router, prefix="/api/v1", tags=["Accounts"])
app.include_router(onboarding.router, prefix="/api/v1", tags=["Onboarding"])
app.include_router(invitations.router, prefix="/api/v1", tags=["Invitations"])
app.include_router(help_posts.router, prefix="/api/v1", tags=["Help Posts"])
app.include_router(groups.router, prefix="/api/v1", tags=["Groups & Announcements"])
app.include_router(reference.router, prefix="/api/v1", tags=["Reference Data"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["Admin"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kudumbam.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
    )
