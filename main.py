import argparse
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from apscheduler.schedulers.background import BackgroundScheduler
from slowapi.errors import RateLimitExceeded
import uvicorn

from auth import auth_router, clear_expired_tokens, limiter
from config import get_settings
from database import SessionLocal, init_db, reset_db
from router import router

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("budget-api")


def sweep_expired_tokens():
    with SessionLocal() as db:
        cleared = clear_expired_tokens(db)
    if cleared:
        logger.info("Cleared %d expired confirmation/reset tokens", cleared)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    scheduler = None
    if settings.scheduler_enabled:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            sweep_expired_tokens, "interval", minutes=settings.token_sweep_minutes
        )
        scheduler.start()
    logger.info("Personal Budget API started")
    yield
    if scheduler:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Personal Budget API", lifespan=lifespan)
app.state.limiter = limiter


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    client = request.client.host if request.client else None
    logger.warning("Rate limit hit: client=%s path=%s", client, request.url.path)
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests, please try again later"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report every violation at once, one entry per offending field."""
    errors = []
    for error in exc.errors():
        location = error["loc"][0]
        field = ".".join(str(part) for part in error["loc"][1:]) or location
        if error["type"] == "missing":
            message = f"{field.replace('_', ' ').capitalize()} is required"
        elif error["type"] == "value_error":
            message = str(error.get("ctx", {}).get("error", error["msg"]))
        else:
            message = error["msg"]
        errors.append({"field": field, "location": location, "msg": message})
    return JSONResponse(status_code=400, content={"errors": errors})


app.include_router(auth_router, prefix="/api/auth", tags=["authentication"])
app.include_router(router, prefix="/api/budgets", tags=["budgets"])


@app.get("/")
def home():
    return {"message": "Welcome to Personal Budget API"}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Personal Budget API")
    parser.add_argument("--clear", action="store_true", help="drop and recreate all tables")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    if args.clear:
        reset_db()
        logger.info("Database cleared successfully")
    else:
        uvicorn.run(app, host=args.host, port=args.port)
