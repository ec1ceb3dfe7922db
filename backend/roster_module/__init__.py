import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .database import Base, engine
from .errors import RosterError, StoreError
from .routes import router

logger = logging.getLogger(__name__)


def init_roster_module() -> None:
    Base.metadata.create_all(bind=engine)


async def roster_error_handler(request: Request, exc: RosterError) -> JSONResponse:
    if isinstance(exc, StoreError):
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RosterError, roster_error_handler)


__all__ = ["router", "init_roster_module", "register_error_handlers"]
