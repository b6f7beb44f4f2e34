"""Configuration constants for the static content server."""

HOST: str = "127.0.0.1"
SERVER_PORT: int = 8080
SSL_PORT: int = 8443
SERVER_NAME: str = "StaticContentServer"

CONTENT_ROOT: str = "www"
REDIRECT_DEFS_NAME: str = "redirect.defs"
SUPPORTED_METHODS: tuple[str, ...] = ("GET", "HEAD")
SUPPORTED_FILE_TYPES: tuple[str, ...] = (".html", ".htm", ".txt", ".pdf", ".png", ".jpeg", ".jpg")

WRITE_CHUNK_SIZE: int = 1024
MAX_LINE_BYTES: int = 8192
WORKER_COUNT: int = 16
REQUEST_QUEUE_SIZE: int = 64
IDLE_TIMEOUT_SECS: float | None = None
CATALOG_PER_SESSION: bool = False
DEFAULT_KEEP_ALIVE: bool = True

TLS_CERT_FILE: str = "server.crt"
TLS_KEY_FILE: str = "server.key"
TLS_HANDSHAKE_TIMEOUT_SECS: float = 10.0

LOG_FORMAT: str = "plain"
LOG_LEVEL: str = "INFO"
