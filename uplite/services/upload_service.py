import os
import re
import time
from pathlib import Path
from typing import List, Optional

import aiofiles
import aiofiles.os
from fastapi import HTTPException, Request
from python_multipart.exceptions import FormParserError
from python_multipart.multipart import MultipartParser, parse_options_header

from uplite import config
from uplite.config import Settings
from uplite.logger_config import get_logger

logger = get_logger("upload")

UPLOAD_FIELD = "file"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_\-.]")
_WHITESPACE = re.compile(r"\s+")

# Parser events queued by the sync callbacks and handled after each chunk
PART_HEADERS = "headers"
PART_DATA = "data"
PART_END = "end"


def sanitize_filename(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_.-]`` with an underscore."""
    cleaned = _UNSAFE_CHARS.sub("_", name)
    return _WHITESPACE.sub("_", cleaned)


def now_millis() -> int:
    return int(time.time() * 1000)


def storage_name(original_name: str, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = now_millis()
    return f"{now_ms}-{sanitize_filename(original_name)}"


def file_extension(name: str) -> str:
    """Lowercase extension without the dot; ``""`` for dotfiles and bare names."""
    return os.path.splitext(name)[1].lower().replace(".", "", 1)


def size_limit_detail(max_size: int) -> str:
    return f"File too large. Maximum size is {max_size} bytes"


def max_request_size(settings: Settings) -> int:
    """Largest body a request within the count and size limits can have."""
    return settings.max_files_per_request * (settings.max_file_size_bytes + config.MULTIPART_PART_OVERHEAD)


def check_content_length(request: Request, settings: Settings):
    """Turn away bodies that announce more bytes than the limits allow, before reading any."""
    content_length = request.headers.get("content-length")
    if content_length is None:
        return

    try:
        content_length_value = int(content_length)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid Content-Length header")

    if content_length_value > max_request_size(settings):
        logger.error(f"Rejected upload announcing {content_length_value} bytes")
        raise HTTPException(
            status_code=400,
            detail=(
                f"Upload too large. Maximum is {settings.max_files_per_request} files "
                f"of {settings.max_file_size_bytes} bytes"
            ),
        )


class UploadReceiver:
    """Stream the ``file`` parts of a multipart body straight into the upload directory.

    Count, extension and size limits are enforced while the body is read, so
    an offending part stops the request before the rest of the body arrives.
    Files already written by a request that ends up rejected are removed.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.stored: List[str] = []
        self._created: List[Path] = []
        self._events = []
        self._headers = {}
        self._header_field = b""
        self._header_value = b""
        self._file_count = 0
        self._current = None
        self._written = 0

    # Parser callbacks

    def on_part_begin(self):
        self._headers = {}

    def on_header_field(self, data: bytes, start: int, end: int):
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int):
        self._header_value += data[start:end]

    def on_header_end(self):
        self._headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self):
        self._events.append((PART_HEADERS, self._headers))

    def on_part_data(self, data: bytes, start: int, end: int):
        self._events.append((PART_DATA, data[start:end]))

    def on_part_end(self):
        self._events.append((PART_END, None))

    async def receive(self, request: Request) -> List[str]:
        """Store every file part of the request body and return the generated names."""
        content_type, params = parse_options_header(request.headers.get("content-type"))
        boundary = params.get(b"boundary")
        if content_type != b"multipart/form-data" or not boundary:
            raise HTTPException(status_code=400, detail="No files were uploaded.")

        check_content_length(request, self.settings)

        try:
            await self._consume(request, boundary)
        except FormParserError as e:
            await self._discard()
            raise HTTPException(status_code=400, detail=f"Malformed multipart body: {str(e)}")
        except HTTPException:
            await self._discard()
            raise
        except OSError as e:
            await self._discard()
            logger.error(f"Error writing upload: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail=f"Error uploading file: {str(e)}")
        except Exception:
            await self._discard()
            raise

        if not self.stored:
            raise HTTPException(status_code=400, detail="No files were uploaded.")
        return self.stored

    async def _consume(self, request: Request, boundary: bytes):
        parser = MultipartParser(boundary, callbacks={
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        })
        async for chunk in request.stream():
            parser.write(chunk)
            await self._handle_events()
        parser.finalize()
        await self._handle_events()

    async def _handle_events(self):
        events, self._events = self._events, []
        for kind, payload in events:
            if kind == PART_HEADERS:
                await self._start_part(payload)
            elif kind == PART_DATA:
                await self._write(payload)
            else:
                await self._finish_part()

    async def _start_part(self, headers: dict):
        _, options = parse_options_header(headers.get(b"content-disposition"))
        field = options.get(b"name", b"").decode("utf-8", "replace")
        filename = options.get(b"filename")
        if field != UPLOAD_FIELD or not filename:
            self._current = None
            return

        original = filename.decode("utf-8", "replace")
        logger.debug(f"Processing file: {original}")

        self._file_count += 1
        if self._file_count > self.settings.max_files_per_request:
            raise HTTPException(
                status_code=400,
                detail=f"Too many files. Maximum is {self.settings.max_files_per_request} per upload",
            )

        allowed = self.settings.allowed_extensions
        if allowed and file_extension(original) not in allowed:
            logger.error(f"File rejected due to invalid extension: {original}")
            raise HTTPException(
                status_code=400,
                detail=f"Invalid file type. Allowed extensions are: {', '.join(allowed)}",
            )

        name, path, handle = await self._open_unique(original)
        self._created.append(path)
        self._current = (name, handle)
        self._written = 0

    async def _open_unique(self, original: str):
        """Create the target exclusively, moving the timestamp on while the name is taken."""
        now_ms = now_millis()
        while True:
            name = storage_name(original, now_ms)
            path = self.settings.upload_dir / name
            try:
                handle = await aiofiles.open(path, "xb")
            except FileExistsError:
                now_ms += 1
                continue
            return name, path, handle

    async def _write(self, chunk: bytes):
        if self._current is None:
            return
        self._written += len(chunk)
        if self._written > self.settings.max_file_size_bytes:
            logger.error(f"Upload of {self._current[0]} exceeded {self.settings.max_file_size_bytes} bytes")
            raise HTTPException(status_code=400, detail=size_limit_detail(self.settings.max_file_size_bytes))
        await self._current[1].write(chunk)

    async def _finish_part(self):
        if self._current is None:
            return
        name, handle = self._current
        self._current = None
        await handle.close()
        logger.debug(f"Stored {name} ({self._written} bytes)")
        self.stored.append(name)

    async def _discard(self):
        if self._current is not None:
            await self._current[1].close()
            self._current = None
        for path in self._created:
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                pass
        self._created = []
        self.stored = []
