import socket
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

import psutil
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles

from uplite import __version__
from uplite.config import ConfigError, Settings
from uplite.logger_config import get_logger, setup_logger
from uplite.routes.file_routes import client_address, router
from uplite.services.storage_manager import StorageManager

STATIC_DIR = Path(__file__).parent / "static"

SECURITY_HEADERS = {
    "Cache-Control": "no-store",
    "X-Content-Type-Options": "nosniff",
}

logger = get_logger("server")


def create_app(settings: Settings) -> FastAPI:
    """Build the application around an already resolved Settings value."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.storage_manager.initialize()
        yield

    app = FastAPI(title="uplite", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.storage_manager = StorageManager(settings.upload_dir)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response

    @app.middleware("http")
    async def access_log(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{client_address(request)} {request.method} {request.url.path} "
            f"{response.status_code} {elapsed_ms:.3f} ms"
        )
        return response

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        # Sent by ServerErrorMiddleware, outside the http middlewares above
        logger.error(f"Unhandled Error: {str(exc)}", exc_info=exc)
        logger.info(f"{client_address(request)} {request.method} {request.url.path} 500")
        return PlainTextResponse(
            str(exc) or "An unexpected error occurred.",
            status_code=500,
            headers=SECURITY_HEADERS,
        )

    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
    app.include_router(router)
    return app


def access_urls(port: int) -> List[str]:
    """URLs the server answers on: localhost plus every IPv4 interface address."""
    urls = [f"http://localhost:{port}", f"http://127.0.0.1:{port}"]
    for addresses in psutil.net_if_addrs().values():
        for address in addresses:
            if address.family != socket.AF_INET:
                continue
            url = f"http://{address.address}:{port}"
            if url not in urls:
                urls.append(url)
    return urls


def log_banner(settings: Settings):
    allowed = ", ".join(settings.allowed_extensions) if settings.allowed_extensions else "All"
    logger.info("=== uplite server is running ===")
    logger.info("Access the server at the following addresses:")
    for url in access_urls(settings.port):
        logger.info(f" - {url}")
    logger.info("Server Configuration:")
    logger.info(f" - Shared Folder     : {settings.upload_dir}")
    logger.info(f" - Username          : {settings.username}")
    logger.info(f" - Password          : {settings.password}")
    logger.info(f" - Allowed Extensions: {allowed}")
    logger.info(f" - Max Files/Upload  : {settings.max_files_per_request}")
    logger.info(f" - Max File Size     : {settings.max_file_size_bytes / (1024 * 1024):.2f} MB")


def main(argv: Optional[List[str]] = None):
    try:
        settings = Settings.from_args(argv)
    except ConfigError as e:
        setup_logger()
        logger.critical(str(e))
        sys.exit(1)

    setup_logger(settings.log_dir)
    log_banner(settings)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, access_log=False)


if __name__ == "__main__":
    main()
