import logging
from textwrap import dedent

import pydantic
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute

from fileshare_api.errors import (
    AppError,
    handle_app_errors,
    handle_broad_exceptions,
    handle_pydantic_validation_errors,
)
from fileshare_api.middleware import add_security_headers, collect_metrics, log_requests
from fileshare_api.routers.auth import router as auth_router
from fileshare_api.routers.files import router as files_router
from fileshare_api.routers.health import router as health_router
from fileshare_api.settings import Settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Set one format and level for the root logger. Safe to call more than once."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create a FastAPI application."""
    settings = settings or Settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Fileshare API",
        summary="Upload files to S3 and share them with presigned URLs",
        version=settings.app_version,
        description=dedent(
            """\
        Authenticate with a Cognito access or ID token (`Authorization: Bearer <token>`).

        | Route | Notes |
        | --- | --- |
        | `POST /files/upload` | multipart, JSON/base64 or raw body, max 50MB |
        | `GET /api/files` | paginated with `limit` / `offset` |
        | `POST /api/files/{file_id}/presigned-url` | `expiresIn` up to 7 days |
        """
        ),
        docs_url="/docs",
        generate_unique_id_function=custom_generate_unique_id,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings

    app.include_router(files_router, tags=["files"])
    app.include_router(auth_router, tags=["auth"])
    app.include_router(health_router, tags=["health"])

    app.add_exception_handler(AppError, handle_app_errors)
    app.add_exception_handler(
        exc_class_or_status_code=pydantic.ValidationError,
        handler=handle_pydantic_validation_errors,
    )
    app.add_exception_handler(RequestValidationError, handle_pydantic_validation_errors)

    # the last one added runs first
    app.middleware("http")(handle_broad_exceptions)
    app.middleware("http")(collect_metrics)
    app.middleware("http")(log_requests)
    app.middleware("http")(add_security_headers)

    logger.info("Created %s %s", settings.app_name, settings.app_version)
    return app


def custom_generate_unique_id(route: APIRoute):
    """
    Generate prettier `operationId`s in the OpenAPI schema.

    These become the function names in generated client SDKs.
    """
    return f"{route.tags[0]}-{route.name}"


if __name__ == "__main__":
    import uvicorn

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
