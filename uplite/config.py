"""Configuration settings for the uplite file server."""
import argparse
import secrets
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

# Server defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 58080
DEFAULT_USER = "admin"
DEFAULT_PASSWORD = "password"
DEFAULT_DIR = "./"
DEFAULT_LOG_DIR = "logs"

# Upload limits
DEFAULT_MAX_FILES = 10
DEFAULT_MAX_SIZE = 5 * 1024 * 1024 * 1024  # 5GB

# Generated password
PASSWORD_LENGTH = 8
PASSWORD_ALPHABET = string.ascii_lowercase + string.digits

# Allowance per multipart part for boundaries and part headers
MULTIPART_PART_OVERHEAD = 64 * 1024  # 64KB

AUTH_REALM = "uplite"


class ConfigError(Exception):
    """Raised when the resolved configuration cannot be applied."""


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def parse_extensions(value: str) -> Tuple[str, ...]:
    """Turn ``"PDF, .txt,,png"`` into ``("pdf", "txt", "png")``."""
    extensions = []
    for ext in (value or "").split(","):
        ext = ext.strip().lower().lstrip(".")
        if ext and ext not in extensions:
            extensions.append(ext)
    return tuple(extensions)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"{value} must be a positive integer")
    return number


def _port(value: str) -> int:
    number = int(value)
    if not 1 <= number <= 65535:
        raise argparse.ArgumentTypeError(f"{value} is not a valid port")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="uplite",
        description="Lightweight password protected file upload server",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help="Address to bind")
    parser.add_argument("--port", type=_port, default=DEFAULT_PORT, help="Port to listen on")
    parser.add_argument("--user", default=DEFAULT_USER, help="Basic auth username")
    parser.add_argument("--password", default=DEFAULT_PASSWORD,
                        help="Basic auth password (random if left at the default)")
    parser.add_argument("--dir", default=DEFAULT_DIR, help="Shared upload directory")
    parser.add_argument("--max-files", type=_positive_int, default=DEFAULT_MAX_FILES,
                        help="Maximum number of files per upload request")
    parser.add_argument("--max-size", type=_positive_int, default=DEFAULT_MAX_SIZE,
                        help="Maximum size of a single file in bytes")
    parser.add_argument("--extensions", default="",
                        help="Comma separated list of allowed extensions (empty allows all)")
    parser.add_argument("--log-dir", default=DEFAULT_LOG_DIR, help="Directory for the log file")
    return parser


def ensure_upload_dir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Cannot create upload directory {path}: {e}") from e
    if not path.is_dir():
        raise ConfigError(f"Upload path {path} is not a directory")


@dataclass(frozen=True)
class Settings:
    upload_dir: Path
    username: str = DEFAULT_USER
    password: str = DEFAULT_PASSWORD
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    max_files_per_request: int = DEFAULT_MAX_FILES
    max_file_size_bytes: int = DEFAULT_MAX_SIZE
    allowed_extensions: Tuple[str, ...] = field(default_factory=tuple)
    log_dir: Path = Path(DEFAULT_LOG_DIR)

    @classmethod
    def from_args(cls, argv: Optional[List[str]] = None) -> "Settings":
        """Create Settings from command line arguments.

        A password left at the literal default is replaced by a random one,
        and the upload directory is created if it does not exist yet.
        """
        args = build_parser().parse_args(argv)

        password = args.password
        if password == DEFAULT_PASSWORD:
            password = generate_password()

        upload_dir = Path(args.dir).expanduser().resolve()
        ensure_upload_dir(upload_dir)

        return cls(
            upload_dir=upload_dir,
            username=args.user,
            password=password,
            port=args.port,
            host=args.host,
            max_files_per_request=args.max_files,
            max_file_size_bytes=args.max_size,
            allowed_extensions=parse_extensions(args.extensions),
            log_dir=Path(args.log_dir),
        )
