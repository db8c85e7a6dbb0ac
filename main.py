from contextlib import asynccontextmanager, contextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

import aggregation
from access import SESSION_KEY, OwnerScope, get_db, get_scope, session_user_id
from config import Settings
from database import Database
from errors import AppError, AuthenticationError, DuplicateRecordError, StorageError
from logger import get_logger, setup_logging
from schemas import Customer, CustomerCreate, Job, JobCreate, LoginRequest, Pipeline, PipelineCreate, User
from seeder import create_sample_data

logger = get_logger(__name__)

router = APIRouter()


# ---------------------------
# Utility helpers
# ---------------------------

@contextmanager
def failing_with(message: str):
    """Turn a storage failure into a 500 carrying only `message`."""
    try:
        yield
    except StorageError:
        logger.exception(message)
        raise HTTPException(status_code=500, detail=message)


def new_user_profile(username: str) -> User:
    return User(
        github_id=f"{username}-github-id",
        username=username,
        name=f"{username.capitalize()} Developer",
        email=f"{username}@example.com",
        avatar=f"https://avatars.githubusercontent.com/u/{username}?v=4",
    )


def user_payload(user: dict) -> dict:
    return {
        "id": str(user["_id"]),
        "name": user["name"],
        "email": user["email"],
        "avatar": user.get("avatar"),
        "githubUsername": user["username"],
    }


# ---------------------------
# Health + Test endpoints
# ---------------------------
@router.get("/")
def read_root():
    return {"message": "Pipeline Manager Backend Running"}


@router.get("/test")
def test_database(db: Database = Depends(get_db)):
    response = {
        "backend": "Running",
        "database": db.backend,
        "database_name": db.name,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        db.ping()
        response["connection_status"] = "Connected"
        response["collections"] = db.list_collection_names()[:10]
    except StorageError as e:
        logger.warning("Store status check failed: %s", e)
        response["connection_status"] = "Error"
    return response


# ---------------------------
# Auth
# ---------------------------
@router.post("/auth/github")
def login_github(request: Request, payload: Optional[LoginRequest] = None, db: Database = Depends(get_db)):
    # Simulated GitHub OAuth: only configured usernames are accepted
    username = (payload.username or "").strip() if payload else ""
    if not username or username not in request.app.state.settings.allowed_usernames:
        raise AuthenticationError("Invalid username")

    created = False
    with failing_with("Authentication failed"):
        user = db.get_document("users", {"username": username})
        if user is None:
            try:
                db.insert(new_user_profile(username))
                created = True
                logger.info("Created user %s", username)
            except DuplicateRecordError:
                logger.info("User %s was created concurrently", username)
            user = db.get_document("users", {"username": username})

    request.session[SESSION_KEY] = str(user["_id"])

    if created:
        create_sample_data(OwnerScope(db, user["_id"]))

    return {"success": True, "user": user_payload(user)}


@router.post("/auth/logout")
def logout(request: Request):
    request.session.clear()
    return {"success": True}


@router.get("/api/user")
def current_user(user_id=Depends(session_user_id), db: Database = Depends(get_db)):
    with failing_with("Failed to fetch user"):
        user = db.get_document("users", {"_id": user_id})
    if user is None:
        raise AuthenticationError()
    return user_payload(user)


# ---------------------------
# Dashboard
# ---------------------------
@router.get("/api/dashboard/stats")
async def dashboard_stats(scope: OwnerScope = Depends(get_scope)):
    with failing_with("Failed to fetch stats"):
        return await aggregation.dashboard_stats(scope)


# ---------------------------
# Jobs
# ---------------------------
@router.get("/api/jobs")
def list_jobs(scope: OwnerScope = Depends(get_scope)):
    with failing_with("Failed to fetch jobs"):
        return aggregation.list_jobs(scope)


@router.post("/api/jobs", status_code=201)
def create_job(payload: JobCreate, scope: OwnerScope = Depends(get_scope)):
    with failing_with("Failed to create job"):
        customer = scope.require("customers", payload.customerId, "Customer")
        pipeline = scope.require("pipelines", payload.pipelineId, "Pipeline")
        job_id = scope.insert(Job(
            title=payload.title,
            customer_id=customer["_id"],
            pipeline_id=pipeline["_id"],
            current_step=payload.currentStep,
            status=payload.status,
            due_date=payload.dueDate,
            progress=payload.progress,
            user_id=scope.user_id,
        ))
    return {"success": True, "jobId": str(job_id)}


# ---------------------------
# Customers
# ---------------------------
@router.get("/api/customers")
def list_customers(scope: OwnerScope = Depends(get_scope)):
    with failing_with("Failed to fetch customers"):
        return aggregation.list_customers(scope)


@router.post("/api/customers", status_code=201)
def create_customer(payload: CustomerCreate, scope: OwnerScope = Depends(get_scope)):
    with failing_with("Failed to create customer"):
        customer_id = scope.insert(Customer(user_id=scope.user_id, **payload.model_dump()))
    return {"success": True, "customerId": str(customer_id)}


# ---------------------------
# Pipelines
# ---------------------------
@router.get("/api/pipelines")
def list_pipelines(scope: OwnerScope = Depends(get_scope)):
    with failing_with("Failed to fetch pipelines"):
        return aggregation.list_pipelines(scope)


@router.post("/api/pipelines", status_code=201)
def create_pipeline(payload: PipelineCreate, scope: OwnerScope = Depends(get_scope)):
    with failing_with("Failed to create pipeline"):
        pipeline_id = scope.insert(Pipeline(user_id=scope.user_id, **payload.model_dump()))
    return {"success": True, "pipelineId": str(pipeline_id)}


# ---------------------------
# Error handlers
# ---------------------------
async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, StorageError):
        logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"error": "Internal server error"}, status_code=exc.status_code)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse({"error": message}, status_code=400)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


# ---------------------------
# Application factory
# ---------------------------
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        settings = Settings.from_env()
        setup_logging(settings.log_level, settings.log_file)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.db = Database(settings).connect()
        try:
            yield
        finally:
            app.state.db.close()

    app = FastAPI(title="Pipeline Manager API", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        max_age=settings.session_max_age,
        same_site="lax",
        https_only=False,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
