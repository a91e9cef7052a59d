import asyncio
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from school_portal.core.cache import query_cache
from school_portal.core.config import settings
from school_portal.core.database import create_db_and_tables, engine
from school_portal.services.countdown import timer_registry
from school_portal.services.errors import WorkflowError
from school_portal.services.submission_workflow import expire_overdue_attempts, resume_countdowns
from school_portal.api import auth, courses, assignments, attempts, grading, grades, assignment_files, chat

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    logger.info(
        "%s %s -> %s (%.2fs)",
        request.method, request.url.path, response.status_code, time.time() - start
    )
    return response


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include API routers
app.include_router(auth.router, prefix="/api")
app.include_router(courses.router, prefix="/api")
app.include_router(assignments.router, prefix="/api")
app.include_router(attempts.router, prefix="/api")
app.include_router(grading.router, prefix="/api")
app.include_router(grades.router, prefix="/api")
app.include_router(assignment_files.router, prefix="/api")
app.include_router(chat.router, prefix="/api")


@app.on_event("startup")
async def on_startup():
    """Create tables, submit attempts that ran out while we were down, re-arm the rest"""
    create_db_and_tables()
    timer_registry.bind_loop(asyncio.get_running_loop())
    with Session(engine) as session:
        expired = expire_overdue_attempts(session)
        resumed = resume_countdowns(session)
    logger.info("Startup: %s overdue attempts submitted, %s countdowns resumed", expired, resumed)


@app.on_event("shutdown")
async def on_shutdown():
    cancelled = timer_registry.cancel_all()
    query_cache.clear()
    logger.info("Shutdown: %s countdowns cancelled", cancelled)


@app.get("/")
def read_root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "active_countdowns": timer_registry.active_count(),
        "query_cache": query_cache.get_stats(),
    }
