import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from pydantic import ValidationError
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException, MultiPartParser

from cdn_server import config
from cdn_server.app.services.auth import Authenticator
from cdn_server.app.services.storage_manager import StorageManager, content_type_for
from cdn_server.config import ConfigError, Settings, load_config
from cdn_server.logger_config import LOGGER_NAME, setup_logger, structured_log
from cdn_server.monitor import FailureMonitor

UPLOAD_SUCCESS_MESSAGE = "File uploaded successfully!"


async def plain_text_http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render every HTTP error as a short plain-text body."""
    return PlainTextResponse(f"{exc.detail}\n", status_code=exc.status_code, headers=exc.headers)


async def require_credentials(request: Request):
    """Reject the request with 401 unless it carries the configured Basic credentials."""
    authenticator: Authenticator = request.app.state.authenticator
    if not authenticator.authenticate(
        request.headers.get("authorization"), request.method, request.url.path
    ):
        raise HTTPException(
            status_code=401,
            detail="401 Unauthorized",
            headers={"WWW-Authenticate": f'Basic realm="{config.AUTH_REALM}"'},
        )


def check_content_length(request: Request, max_size: int):
    """Reject a declared Content-Length above the upload limit before reading the body."""
    content_length = request.headers.get("content-length")
    if content_length is None:
        return

    try:
        content_length_value = int(content_length)
    except ValueError:
        raise HTTPException(status_code=400, detail="Bad Request")

    if content_length_value > max_size:
        raise HTTPException(status_code=413, detail="Payload Too Large")


async def bounded_stream(request: Request, max_size: int) -> AsyncIterator[bytes]:
    """Yield the request body, aborting with 413 once more than max_size bytes arrive."""
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_size:
            raise HTTPException(status_code=413, detail="Payload Too Large")
        yield chunk


def create_app(settings: Settings, logger: Optional[logging.Logger] = None) -> FastAPI:
    """Build the CDN application around immutable settings and a logger."""
    logger = logger or logging.getLogger(LOGGER_NAME)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.storage_manager.initialize()
        yield

    app = FastAPI(title="CDN File Server", lifespan=lifespan)
    app.add_exception_handler(StarletteHTTPException, plain_text_http_exception_handler)

    def alert(message: str):
        logger.warning(structured_log("Repeated authentication failures", event="auth_failure_alert", detail=message))

    app.state.settings = settings
    app.state.storage_manager = StorageManager(settings.uploads_dir, logger)
    app.state.authenticator = Authenticator(
        settings,
        logger,
        FailureMonitor(
            settings.auth_failure_threshold,
            settings.auth_failure_window_seconds,
            alert_handler=alert,
        ),
    )

    async def upload_file(request: Request):
        """Accept a multipart upload with a single `file` field."""
        storage_manager: StorageManager = request.app.state.storage_manager
        max_size = settings.max_upload_size
        logger.info(f"Receiving upload request: {request.method} {request.url.path}")

        try:
            check_content_length(request, max_size)

            content_type = request.headers.get("content-type", "")
            if not content_type.lower().startswith("multipart/form-data"):
                raise HTTPException(status_code=400, detail="Bad Request")

            parser = MultiPartParser(request.headers, bounded_stream(request, max_size))
            try:
                form = await parser.parse()
            except (MultiPartException, ValueError) as e:
                logger.info(f"Malformed multipart body: {e}")
                raise HTTPException(status_code=400, detail="Bad Request")
        except HTTPException as e:
            if e.status_code == 413:
                logger.warning(structured_log(
                    "Upload too large",
                    event="upload_too_large",
                    limit=max_size,
                    declared=request.headers.get("content-length"),
                ))
            raise

        try:
            upload = form.get("file")
            if not isinstance(upload, UploadFile):
                logger.info("Upload is missing the file field")
                raise HTTPException(status_code=400, detail="Bad Request")

            filename = storage_manager.sanitize_filename(upload.filename)
            if filename is None:
                logger.warning(structured_log("Invalid filename", event="invalid_filename", filename=repr(upload.filename)))
                raise HTTPException(status_code=400, detail="Invalid filename")

            try:
                size = await storage_manager.save_upload(filename, upload)
            except OSError as e:
                logger.error(structured_log("Error storing upload", event="storage_error", filename=filename, error=str(e)), exc_info=True)
                raise HTTPException(status_code=500, detail="Internal Server Error")
        finally:
            await form.close()

        logger.info(structured_log("File uploaded successfully", event="file_uploaded", filename=filename, size=size))
        return PlainTextResponse(UPLOAD_SUCCESS_MESSAGE)

    async def download_file(file_path: str, request: Request):
        """Stream a stored file back to the client."""
        storage_manager: StorageManager = request.app.state.storage_manager
        logger.info(f"Received request: {request.method} {request.url.path}")

        try:
            path, file_stat = await storage_manager.resolve_download(file_path)
        except FileNotFoundError:
            logger.info(structured_log("File not found", event="file_not_found", path=request.url.path))
            raise HTTPException(status_code=404, detail="404 page not found")
        except OSError as e:
            logger.error(structured_log("Error reading file", event="storage_error", path=request.url.path, error=str(e)), exc_info=True)
            raise HTTPException(status_code=500, detail="Internal Server Error")

        headers = {"content-length": str(file_stat.st_size)}
        if request.method == "HEAD":
            return Response(media_type=content_type_for(path), headers=headers)

        logger.info(structured_log("Serving file", event="file_served", path=request.url.path, size=file_stat.st_size))
        return StreamingResponse(
            storage_manager.iter_file(path),
            media_type=content_type_for(path),
            headers=headers,
        )

    auth = [Depends(require_credentials)]
    app.add_api_route("/upload", upload_file, methods=["POST"], dependencies=auth)
    app.add_api_route("/", upload_file, methods=["POST"], dependencies=auth)
    app.add_api_route("/{file_path:path}", download_file, methods=["GET", "HEAD"], dependencies=auth)

    return app


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Authenticated HTTP file server")
    parser.add_argument("--config", default="config.json", help="Path to the JSON configuration file")
    parser.add_argument("--port", type=int, help="Override the configured port")
    parser.add_argument("--log-level", help="Override the configured console log level")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    try:
        settings = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    overrides = {}
    if args.port is not None:
        overrides["port"] = args.port
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if overrides:
        try:
            settings = Settings.model_validate({**settings.model_dump(), **overrides})
        except ValidationError as e:
            print(f"Error: invalid command line override: {e}", file=sys.stderr)
            sys.exit(1)

    logger = setup_logger(settings.log_dir, settings.log_level, settings.logzio_token, settings.logzio_url)
    logger.info("Starting CDN File Server...")
    logger.info(f"Upload directory: {settings.uploads_dir}")
    logger.info(f"Maximum upload size: {settings.max_upload_size / (1024*1024):.2f} MB")
    logger.info(f"Authentication required: {settings.require_auth}")

    uvicorn.run(create_app(settings, logger), host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
