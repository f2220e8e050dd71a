from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ecolend.config import settings
from ecolend.db import create_db_and_tables
from ecolend.error import LedgerError
from ecolend.logging import RequestIdMiddleware, setup_logging
from ecolend.routers import audit, auth, equipment, esg, finance, loans, users

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()  # ✅ 启动阶段建表
    log.info("startup", app=settings.app_name)
    yield
    log.info("shutdown")


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(auth.router)
    app.include_router(equipment.router)
    app.include_router(loans.router)
    app.include_router(esg.router)
    app.include_router(audit.router)
    app.include_router(users.router)
    app.include_router(finance.router)

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if exc.status_code >= 500:
            log.error("ledger_error", code=exc.code, message=exc.message, path=request.url.path)
        else:
            log.warning("request_rejected", code=exc.code, message=exc.message, path=request.url.path)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    return app


app = create_app()
