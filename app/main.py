import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from app.config import get_settings
from app.db import create_db_and_tables, engine
from app.error import ServiceError
from app.routers import auth, users, categories, tools, transactions, dashboard
from app.services.overdue import OverdueScheduler

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()

    scheduler = None
    if settings.overdue_sweep_enabled:
        scheduler = OverdueScheduler(lambda: Session(engine))
        scheduler.start()
    yield
    if scheduler is not None:
        await scheduler.stop()
    logger.info("service stopped")


app = FastAPI(title="Tool Room - checkout tracker", lifespan=lifespan)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(categories.router)
app.include_router(tools.router)
app.include_router(transactions.router)
app.include_router(dashboard.router)


@app.get("/health")
def health():
    return {"ok": True}


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"code": "VALIDATION_ERROR", "message": "Request validation failed", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("database error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": {"code": "INTERNAL_ERROR", "message": "Database unavailable"}},
    )
