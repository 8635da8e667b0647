"""Shared constants for the request pipeline."""

# Main queue tick
PROCESS_REQUEST_DELAY_MS = 1000

# Request throttle (durable queue retries)
MIN_RETRY_WAIT_TIME_MS = 10
MAX_RANDOM_RETRY_WAIT_TIME_MS = 100
MAX_RETRY_WAIT_TIME_MS = 10 * 1000

DEFAULT_BASE_URL = "https://api.example.com"
DEFAULT_REQUEST_TIMEOUT_S = 10.0
AUTHENTICATE_COMMAND = "Authenticate"

# Backend jsonCode values
JSON_CODE_SUCCESS = 200
JSON_CODE_NOT_AUTHENTICATED = 407
JSON_CODE_EXP_ERROR = 666

# HTTP statuses the backend uses for retryable server failures
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500
HTTP_STATUS_BAD_GATEWAY = 502
HTTP_STATUS_GATEWAY_TIMEOUT = 504
HTTP_STATUS_UNKNOWN_ERROR = 520

# "Auth is down" marker sent with JSON_CODE_EXP_ERROR
ERROR_TITLE_SOCKET = "Issue connecting to database"
ERROR_TYPE_SOCKET = "socket"

# Storage keys
NETWORK_KEY = "network"
SESSION_KEY = "session"
CREDENTIALS_KEY = "credentials"
