"""
VirtuClass Backend - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Maps application errors onto JSON error responses
5. Registers all API route handlers and the health check

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Business logic and external collaborators (mail, calendar, storage)
- dependencies.py: Authorization gate
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from virtuclass import config
from virtuclass.database import create_tables
from virtuclass.errors import AppError, ConflictError
from virtuclass.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from virtuclass.routes import (
    auth, users, courses, assessments, submissions, sessions, google, resources, dashboard,
)

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if config.DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="VirtuClass Backend",
    description=(
        "Role-based learning management API: accounts and approvals, courses and "
        "enrollment, timed assessments with auto and manual grading, live Google "
        "Meet sessions and shared resources."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# Allowed origins come from CORS_ORIGINS (comma separated).
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
#
# Generates a unique UUID per incoming request and:
# 1. Stores it in a context variable (available to all log entries)
# 2. Returns it in the X-Request-ID response header
# 3. Logs request start/end with latency measurement
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    req_id = generate_request_id()
    request_id_var.set(req_id)
    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} → {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Error handlers
#
# AppError subclasses carry their own status and code. Unique index
# violations become 409. Anything else is logged and answered with a
# generic 500 that does not leak internals.
# ──────────────────────────────────────────────────────────────
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    level = "ERROR" if exc.status_code >= 500 else "INFO"
    log_with_context(logger, level,
        f"{exc.code}: {exc.message}",
        context={"request_id": request_id_var.get()},
        extra_data={"path": request.url.path, "status_code": exc.status_code})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    log_with_context(logger, "WARNING",
        "Unique constraint violation",
        context={"request_id": request_id_var.get()},
        extra_data={"path": request.url.path, "error": str(exc.orig)})
    error = ConflictError("Resource already exists")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_with_context(logger, "ERROR",
        f"Unhandled error: {exc}",
        context={"request_id": request_id_var.get()},
        extra_data={"path": request.url.path},
        exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(auth.router, tags=["Auth"])
app.include_router(users.router, tags=["Users"])
app.include_router(courses.router, tags=["Courses"])
app.include_router(submissions.router, tags=["Submissions"])
app.include_router(assessments.router, tags=["Assessments"])
app.include_router(sessions.router, tags=["Sessions"])
app.include_router(google.router, tags=["Google"])
app.include_router(resources.router, tags=["Resources"])
app.include_router(dashboard.router, tags=["Dashboard"])


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for container health checks and monitoring."""
    return {"status": "healthy", "service": "virtuclass-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "VirtuClass Backend",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "auth": "/api/auth/*",
            "users": "/api/users",
            "courses": "/api/courses",
            "assessments": "/api/assessments",
            "sessions": "/api/sessions",
            "google": "/api/google/*",
            "resources": "/api/resources",
            "dashboard": "/api/dashboard/stats",
            "analytics": "/api/analytics/data",
        }
    }
