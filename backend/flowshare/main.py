"""FlowShare Backend Application.

This is the main entry point for the FlowShare backend service.
FlowShare lets devices exchange files by joining a shared room code; every
device polls the room listing and downloads what other devices uploaded.

Modules:
    - rooms: room id sanitization and per-room storage namespaces
    - files: upload, listing and download of room files
    - config: YAML-backed settings
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from flowshare.config import AppConfig, get_config
from flowshare.errors import ErrorKind, FileNotFoundInRoomError, FileShareError, UploadTooLargeError
from flowshare.files.router import router as files_router, set_room_files
from flowshare.files.schemas import ClientConfigResponse, ErrorResponse
from flowshare.files.service import RoomFiles

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Allowance for multipart boundaries, part headers and the roomId field on
# top of the file body when judging an upload by its Content-Length.
MULTIPART_OVERHEAD_BYTES = 64 * 1024

logger = logging.getLogger(__name__)


def configure_logging(level: str = "info") -> None:
    """Install the root handler once and apply the configured level."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    configured_level = getattr(logging, level.upper(), None)
    if isinstance(configured_level, int):
        logging.getLogger().setLevel(configured_level)


def _declared_length(request: Request) -> Optional[int]:
    value = request.headers.get("content-length")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _error_body(message: str, kind: str, path: Optional[str] = None) -> dict:
    return ErrorResponse(message=message, error=kind, path=path).model_dump(exclude_none=True)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(FileShareError)
    async def file_share_error_handler(request: Request, exc: FileShareError) -> JSONResponse:
        path = None
        if isinstance(exc, FileNotFoundInRoomError):
            path = exc.logical_path
            logger.warning("File missing: %s", path)
        elif exc.status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message,
                         getattr(exc, "cause", None))
        else:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            _error_body(exc.message, exc.kind, path),
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(_error_body(message, ErrorKind.VALIDATION), status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse({"success": False, "message": "Not Found"}, status_code=404)
        return JSONResponse(
            {"success": False, "message": str(exc.detail)},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            _error_body("Internal Server Error", ErrorKind.INTERNAL),
            status_code=500,
        )


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI application for a configuration.

    Args:
        config: Settings to use. Defaults to ``get_config()``.
    """
    config = config or get_config()
    storage = config.storage

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Startup
        configure_logging(config.logging.level)
        room_files = RoomFiles.build(
            storage.root_dir,
            max_upload_bytes=storage.max_upload_bytes,
            max_room_id_length=storage.max_room_id_length,
            chunk_size=storage.chunk_size,
        )
        room_files.resolver.ensure_root()
        set_room_files(room_files)
        logger.info(
            "FlowShare storage ready at %s (max upload %d bytes)",
            storage.root_dir,
            storage.max_upload_bytes,
        )

        yield  # Application runs here

        # Shutdown
        set_room_files(None)
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="FlowShare API",
        description="Room-scoped file relay for ad hoc device-to-device sharing",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config

    @app.middleware("http")
    async def reject_oversized_uploads(request: Request, call_next):
        """Refuse an upload by its Content-Length before the form is parsed."""
        if request.method == "POST" and request.url.path == "/upload":
            declared = _declared_length(request)
            limit = storage.max_upload_bytes + MULTIPART_OVERHEAD_BYTES
            if declared is not None and declared > limit:
                exc = UploadTooLargeError(storage.max_upload_bytes)
                logger.info("POST /upload rejected: Content-Length %d over %d", declared, limit)
                return JSONResponse(
                    _error_body(exc.message, exc.kind),
                    status_code=exc.status_code,
                )
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_exception_handlers(app)

    app.include_router(files_router)

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        """Availability message for humans and load balancers."""
        return "FlowShare API is running"

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    @app.get("/client-config", response_model=ClientConfigResponse)
    async def client_config() -> ClientConfigResponse:
        """Polling cadence and upload limit for clients."""
        return ClientConfigResponse(
            poll_interval_seconds=config.sync.poll_interval_seconds,
            max_upload_bytes=storage.max_upload_bytes,
        )

    return app


configure_logging()

app = create_app()
