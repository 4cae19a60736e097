"""Application wiring for the supplier portal.

Builds the FastAPI instance, makes sure the key-value table exists, and plugs
in the routers, middleware and error envelope. ``portal.main`` adds logging,
metrics and the health probe on top.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import (
    PortalError,
    http_exception_handler,
    portal_exception_handler,
    validation_exception_handler,
)
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware

# Importing the models registers their tables with ``Base.metadata``.
from . import models as _models  # noqa: F401

app = FastAPI(title=settings.APP_NAME)

Base.metadata.create_all(bind=engine)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(PortalError, portal_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

from .routers import api_devices as api_devices_router  # noqa: E402

app.include_router(api_devices_router.router)

from .routers import api_marketplace as api_marketplace_router  # noqa: E402

app.include_router(api_marketplace_router.router)

from .routers import api_reports as api_reports_router  # noqa: E402

app.include_router(api_reports_router.router)


__all__ = ["app"]
