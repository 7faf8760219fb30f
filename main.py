import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import models  # noqa: F401  registers every table on Base.metadata
from app.config.logging_config import setup_logging
from app.config.settings import AppConfig
from app.database import Base, engine
from app.routers import (
    activity, analytics, auth, dashboard, department, notification, phase, project, search,
    settings, task, team, user, workload
)

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="TemSafy Pro API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=AppConfig.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)


# Error envelope: every failure is {"error": message}
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": error.get("msg"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Validation error", "details": details})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Route registration
API_PREFIX = "/api"

app.include_router(auth.router, prefix=f"{API_PREFIX}/auth", tags=["Authentication"])
app.include_router(user.router, prefix=f"{API_PREFIX}/users", tags=["Users"])
app.include_router(department.router, prefix=f"{API_PREFIX}/departments", tags=["Departments"])
app.include_router(project.router, prefix=f"{API_PREFIX}/projects", tags=["Projects"])
app.include_router(task.router, prefix=API_PREFIX)
app.include_router(phase.router, prefix=f"{API_PREFIX}/phases", tags=["Phases"])
app.include_router(notification.router, prefix=API_PREFIX)
app.include_router(workload.router, prefix=API_PREFIX)
app.include_router(dashboard.router, prefix=API_PREFIX)
app.include_router(analytics.router, prefix=API_PREFIX)
app.include_router(team.router, prefix=API_PREFIX)
app.include_router(activity.router, prefix=API_PREFIX)
app.include_router(search.router, prefix=API_PREFIX)
app.include_router(settings.router, prefix=API_PREFIX)


@app.on_event("startup")
def startup_event():
    logger.info("Starting TemSafy Pro API")
    if AppConfig.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ensured")


# Root route
@app.get("/")
def read_root():
    return {"message": "TemSafy Pro API"}

@app.get("/health")
def health():
    return {"status": "ok"}
