"""Configuration constants for the static file server."""

HOST: str = "localhost"
PORT: int = 8080
ADDR: str = f"{HOST}:{PORT}"
ADDR_TLS: str = ""
CERT_FILE: str = "./ssl-cert-snakeoil.pem"
KEY_FILE: str = "./ssl-cert-snakeoil.key"

SERVE_DIR: str = "/usr/share/nginx/html"
INDEX_NAMES: tuple[str, ...] = ("index.html",)
GENERATE_INDEX_PAGES: bool = True
COMPRESS: bool = False
BYTE_RANGE: bool = False
VHOST: bool = False

SERVER_NAME: str = "fileserver/1.0"
BUFFER_SIZE: int = 1024
READ_CHUNK_SIZE: int = 8192
SOCKET_TIMEOUT_SECS: int = 5
KEEPALIVE_TIMEOUT_SECS: int = 5
MAX_KEEPALIVE_REQUESTS: int = 100
MAX_REQUEST_BYTES: int = 1_048_576
MAX_HEADER_BYTES: int = 16_384
MAX_BODY_BYTES: int = 524_288
MAX_TARGET_LENGTH: int = 8192

WORKER_COUNT: int = 16
REQUEST_QUEUE_SIZE: int = 128

GZIP_LEVEL: int = 6
CACHE_MAX_ENTRIES: int | None = None

STREAM_INTERVAL_SECS: float = 1.0
STREAM_QUEUE_SIZE: int = 4

LOG_FORMAT: str = "plain"
LOG_LEVEL: str = "INFO"
