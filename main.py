from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import admin_routes
import auth_routes
import project_routes
import task_routes
import team_data_routes
import team_routes
from config import settings
from database import close_client, ensure_indexes, get_db
from exceptions import TaskManagementError
from logging_config import RequestLoggingMiddleware, logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")
    ensure_indexes(get_db())
    yield
    close_client()
    logger.info("Shutdown complete")


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(auth_routes.router)
app.include_router(admin_routes.router)
app.include_router(project_routes.router)
app.include_router(team_routes.router)
app.include_router(task_routes.router)
app.include_router(team_data_routes.team_router)
app.include_router(team_data_routes.leader_router)
app.include_router(team_data_routes.member_router)


# -----------------------------
# Error envelopes
# -----------------------------
GENERIC_ERROR = "Internal server error."


# Starlette's base class also catches router 404/405
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if exc.status_code < 500 else GENERIC_ERROR
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": message},
                        headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        messages.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"success": False,
                                                  "message": f"Validation Error: {', '.join(messages)}"})


@app.exception_handler(TaskManagementError)
async def domain_exception_handler(request: Request, exc: TaskManagementError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": GENERIC_ERROR})
    content = {"success": False, "message": exc.message}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "message": GENERIC_ERROR})


# -----------------------------
# Health/Test
# -----------------------------
@app.get("/")
def read_root():
    return {"message": f"{settings.APP_NAME} running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": settings.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        db = get_db()
        response["connection_status"] = "Connected"
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
