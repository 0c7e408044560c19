STATE_DIR_NAME = ".kanban_sync"
CONFIG_FILE = "config.yaml"
STORE_FILE = "board.yaml"
STORE_LOCK_FILE = "board.lock"
EVENTS_FILE = "events.jsonl"
EVENTS_LOCK_FILE = "events.lock"

STORE_SCHEMA_VERSION = 1
LOCK_TIMEOUT = 30  # seconds

BACKEND_FILE = "file"
BACKEND_MEMORY = "memory"
VALID_BACKENDS = {BACKEND_FILE, BACKEND_MEMORY}

PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "medium"
DEFAULT_CATEGORY = "feature"
DEFAULT_TEAM_ROLE = "member"

DEFAULT_COLUMNS = ("To Do", "In Progress", "Done")

TABLES = (
    "users",
    "workspaces",
    "teams",
    "user_teams",
    "boards",
    "columns",
    "tasks",
    "comments",
)

EVENT_CHANNELS = {
    "boards",
    "columns",
    "tasks",
    "comments",
    "system",
}

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
API_PREFIX = "/api"

# Client read retries (mutations are never retried)
DEFAULT_READ_RETRIES = 2
DEFAULT_RETRY_BACKOFF_SECONDS = 0.2
DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0
