from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import get_log_level
from .i18n import translate
from .services.exceptions import ServiceError
from .storage import invalidate_cache

logging.basicConfig(level=get_log_level())
logger = logging.getLogger(__name__)

# ensure cached data does not leak across reloads
invalidate_cache()

app = FastAPI(title="Cue Score")


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request, exc):
    return JSONResponse(status_code=400, content={"detail": exc.errors()})


@app.exception_handler(ServiceError)
def service_error_handler(request: Request, exc: ServiceError):
    language = request.headers.get("Accept-Language")
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": translate(exc.message, language, **exc.values),
            "code": exc.message,
        },
    )


from .routes.users import router as users_router
from .routes.friends import router as friends_router
from .routes.groups import router as groups_router

app.include_router(users_router)
app.include_router(friends_router)
app.include_router(groups_router)
