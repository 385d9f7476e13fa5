import time
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
import settings
from logging_config import configure_logging
from oauth import build_oauth_service
from routers import auth, orders, products, users

configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        try:
            database.db.command("ping")
            database.ensure_indexes(database.db)
        except PyMongoError as e:
            logger.critical("database_connection_failed", error=str(e))
            raise
        logger.info("database_connected", database=settings.DATABASE_NAME)
    else:
        logger.warning("database_not_configured")
    logger.info(
        "server_starting",
        environment=settings.ENVIRONMENT,
        frontend_url=settings.FRONTEND_URL,
        google_oauth=bool(settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET),
        rider_policy=settings.ORDER_RIDER_POLICY,
    )
    yield


app = FastAPI(title="E-commerce Backend", lifespan=lifespan)
app.state.oauth_service = build_oauth_service()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return response


# ----------------------- Errors -----------------------
def error_body(message, error=None) -> dict:
    body = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return body


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.detail, getattr(exc, "error", None)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return JSONResponse(status_code=400, content=error_body(", ".join(messages) or "Invalid request"))


@app.exception_handler(PyMongoError)
async def database_error(request: Request, exc: PyMongoError):
    logger.error("database_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content=error_body("Database error"))


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    error = str(exc) if not settings.IS_PRODUCTION else None
    return JSONResponse(status_code=500, content=error_body("Server error", error))


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "E-commerce API running"}


@app.get("/test")
def health_report():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if settings.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()[:10]
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


app.include_router(auth.router)
app.include_router(products.router)
app.include_router(orders.router)
app.include_router(users.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
