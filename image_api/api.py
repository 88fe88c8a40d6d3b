"""
FastAPI REST API for the image service
Endpoints: /auth/register, /auth/login, /images/{resize,crop,format,rotate,filter,pipeline}, /health, /formats
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .auth import IdentityService
from .chain import build_handler_chain
from .config import ImageApiConfig, get_config
from .core import ImageProcessor
from .errors import FileTooLargeError, ImageApiError, UnsupportedFormatError, ValidationError
from .handlers import ImageHandler, OperationHandler, PipelineHandler
from .metadata import content_type
from .models import ApiResponse, AuthRequest, ErrorResponse, HealthResponse, OperationType, RequestContext, TokenData
from .sinks import CompositeLogSink, FileLogSink, LoggerLogSink, LogSink
from .storage import FileUserStorage, InMemoryUserStorage
from .validation import (
    collect_form_params,
    parse_crop_params,
    parse_filter_params,
    parse_format_params,
    parse_pipeline_steps,
    parse_resize_params,
    parse_rotate_params,
)

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/avif",
    "image/tiff",
}


def extract_token(request: Request) -> Optional[str]:
    """Lấy Bearer token từ Authorization header"""
    header = request.headers.get("authorization")
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def error_response(status_code: int, message: str, code: str) -> JSONResponse:
    body = ErrorResponse(error=message, code=code)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def default_identity_service(config: ImageApiConfig) -> IdentityService:
    users_path = config.get_users_path()
    storage = FileUserStorage(users_path) if users_path else InMemoryUserStorage()
    return IdentityService(storage, config)


def default_log_sink(config: ImageApiConfig) -> LogSink:
    sinks = [FileLogSink(config.get_log_path())]
    if config.mirror_log_entries:
        sinks.append(LoggerLogSink())
    return CompositeLogSink(sinks)


def create_app(
    config: ImageApiConfig = None,
    identity: IdentityService = None,
    log_sink: LogSink = None,
    processor: ImageProcessor = None,
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        config: Service configuration
        identity: Identity capability (register/login/verify_token)
        log_sink: Sink for per-request log entries
        processor: Image processor (thread pool + registry)

    Returns:
        Configured FastAPI app
    """
    config = config or get_config()
    identity = identity or default_identity_service(config)
    log_sink = log_sink or default_log_sink(config)
    processor = processor or ImageProcessor(config)

    app = FastAPI(
        title=config.api_title,
        description="Authenticated image transformations: resize, crop, format, rotate, filter and pipelines",
        version=config.api_version,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.identity = identity
    app.state.processor = processor

    handlers: Dict[str, ImageHandler] = {
        operation_type.value: build_handler_chain(
            OperationHandler(processor, operation_type), identity, log_sink
        )
        for operation_type in OperationType
    }
    handlers["pipeline"] = build_handler_chain(PipelineHandler(processor), identity, log_sink)

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown"""
        logger.info("Shutting down Image API...")
        processor.cleanup()

    @app.exception_handler(ImageApiError)
    async def image_api_exception_handler(request: Request, exc: ImageApiError):
        """Map service errors tới structured error body"""
        if exc.status_code >= 500:
            logger.error(f"{request.url.path} failed: {exc}")
        return error_response(exc.status_code, exc.message, exc.code)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions"""
        logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "INTERNAL_ERROR")

    async def read_upload(image: Optional[UploadFile]) -> bytes:
        """Validate uploaded file: present, allowed MIME type, size limit"""
        if image is None or not image.filename:
            raise ValidationError("Image file is required", field="image")
        if image.content_type and image.content_type not in ALLOWED_MIME_TYPES:
            raise UnsupportedFormatError(f"Unsupported image format: {image.content_type}")

        content = await image.read()
        if len(content) > config.max_file_size:
            raise FileTooLargeError(f"File too large. Max size: {config.max_file_size} bytes")
        if not content:
            raise ValidationError("Image file is empty", field="image")
        return content

    async def run_handler(name: str, request: Request, image: Optional[UploadFile], params: Any) -> Response:
        """Flow chung: đọc file, tạo context, chạy chain, trả ảnh"""
        buffer = await read_upload(image)
        context = RequestContext(
            endpoint=f"/images/{name}",
            params=params,
            token=extract_token(request),
        )
        result = await handlers[name].handle(context, buffer)

        output_format = processor.detect_format(result)
        logger.info(f"{context.endpoint}: {len(buffer)} -> {len(result)} bytes ({output_format})")
        return Response(
            content=result,
            media_type=content_type(output_format),
            headers={"Content-Disposition": f'attachment; filename="processed-image.{output_format}"'},
        )

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint"""
        return HealthResponse(status="ok", version=config.api_version)

    @app.get("/formats")
    async def get_supported_formats():
        """Supported input formats và operations"""
        return {
            "supported_formats": processor.get_supported_formats(),
            "operations": processor.get_supported_operations(),
            "max_file_size": config.max_file_size,
            "default_fit": config.default_fit,
        }

    @app.post("/auth/register", response_model=ApiResponse)
    async def register(body: AuthRequest):
        identity_data = await identity.register(body.email, body.password)
        return ApiResponse(success=True, data=identity_data.model_dump())

    @app.post("/auth/login", response_model=ApiResponse)
    async def login(body: AuthRequest):
        token = await identity.login(body.email, body.password)
        return ApiResponse(success=True, data=TokenData(token=token).model_dump())

    @app.post("/images/resize")
    async def resize_image(
        request: Request,
        image: Optional[UploadFile] = File(None, description="Image file"),
        width: Optional[str] = Form(None),
        height: Optional[str] = Form(None),
        fit: Optional[str] = Form(None),
    ):
        params = parse_resize_params(collect_form_params(width=width, height=height, fit=fit))
        return await run_handler("resize", request, image, params)

    @app.post("/images/crop")
    async def crop_image(
        request: Request,
        image: Optional[UploadFile] = File(None, description="Image file"),
        left: Optional[str] = Form(None),
        top: Optional[str] = Form(None),
        width: Optional[str] = Form(None),
        height: Optional[str] = Form(None),
    ):
        params = parse_crop_params(collect_form_params(left=left, top=top, width=width, height=height))
        return await run_handler("crop", request, image, params)

    @app.post("/images/format")
    async def format_image(
        request: Request,
        image: Optional[UploadFile] = File(None, description="Image file"),
        format_name: Optional[str] = Form(None, alias="format"),
    ):
        params = parse_format_params(collect_form_params(format=format_name))
        return await run_handler("format", request, image, params)

    @app.post("/images/rotate")
    async def rotate_image(
        request: Request,
        image: Optional[UploadFile] = File(None, description="Image file"),
        angle: Optional[str] = Form(None),
    ):
        params = parse_rotate_params(collect_form_params(angle=angle))
        return await run_handler("rotate", request, image, params)

    @app.post("/images/filter")
    async def filter_image(
        request: Request,
        image: Optional[UploadFile] = File(None, description="Image file"),
        filter_name: Optional[str] = Form(None, alias="filter"),
        sigma: Optional[str] = Form(None),
    ):
        params = parse_filter_params(collect_form_params(filter=filter_name, sigma=sigma))
        return await run_handler("filter", request, image, params)

    @app.post("/images/pipeline")
    async def pipeline_image(
        request: Request,
        image: Optional[UploadFile] = File(None, description="Image file"),
        operations: Optional[str] = Form(None, description="JSON array of {type, params}"),
    ):
        steps = parse_pipeline_steps(operations)
        return await run_handler("pipeline", request, image, steps)

    return app


def configure_logging(config: ImageApiConfig = None):
    config = config or get_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_app() -> FastAPI:
    """Factory cho uvicorn (--factory)"""
    configure_logging()
    return create_app()


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    uvicorn.run(
        "image_api.api:get_app",
        factory=True,
        host=config.api_host,
        port=config.api_port,
        log_level=config.log_level.lower(),
    )
