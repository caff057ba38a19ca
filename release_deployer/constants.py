"""Global constants for release-deployer"""

import re

APP_NAME = "release-deployer"
LOG_FORMAT = "%(message)s"

# Application root layout
RELEASES_DIR = "releases"
SHARED_DIR = "shared"
BACKUPS_DIR = "backups"
CURRENT_LINK_NAME = "current"
TEMP_LINK_SUFFIX = ".tmp"

# Per-application files
PROJECT_CONFIG_FILE = ".deploy.yaml"
DEPLOYMENT_LOCK_FILE = ".deploy.lock"
DEPLOYMENT_METADATA_FILE = ".deploy-metadata.json"
BACKUP_METADATA_FILE = "backup.json"
DATABASE_DUMP_FILE = "database.sql"

# Backup internal layout
BACKUP_RELEASE_DIR = "release"
BACKUP_SHARED_DIR = "shared"

# Identifiers
RELEASE_ID_FORMAT = "%Y%m%d-%H%M%S-%f"
BACKUP_ID_PREFIX = "backup-"
BACKUP_PARTIAL_PREFIX = ".partial-"
RELEASE_ID_PATTERN = re.compile(r"^\d{8}-\d{6}-\d{6}$")
BACKUP_ID_PATTERN = re.compile(r"^backup-\d{8}-\d{6}-\d{6}$")

# Retention
DEFAULT_KEEP_RELEASES = 3
DEFAULT_KEEP_BACKUPS = 5

# Timeouts (seconds)
DEFAULT_COMMAND_TIMEOUT = 600
DEFAULT_STAGE_TIMEOUT = 900
DEFAULT_SNAPSHOT_TIMEOUT = 1800

# Maintenance mode
DEFAULT_MAINTENANCE_RETRIES = 3
DEFAULT_MAINTENANCE_RETRY_DELAY = 1.0
DEFAULT_MAINTENANCE_RETRY_AFTER = 60

# Shared resources (Laravel layout)
DEFAULT_SHARED_DIRS = ["storage"]
DEFAULT_SHARED_FILES = [".env"]
DEFAULT_SHARED_WRITABLE_SUBDIRS = [
    "storage/app",
    "storage/app/public",
    "storage/framework/cache",
    "storage/framework/sessions",
    "storage/framework/views",
    "storage/logs",
]
ENV_FILE = ".env"
ENV_EXAMPLE_FILE = ".env.example"
APP_KEY_MARKER = "APP_KEY=base64:"

# Permissions
DEFAULT_WEB_USER = "www-data"
DEFAULT_DIR_MODE = 0o755
DEFAULT_FILE_MODE = 0o644
DEFAULT_WRITABLE_MODE = 0o775
DEFAULT_WRITABLE_PATHS = ["bootstrap/cache"]

# Front-end services
DEFAULT_CADDYFILE = "/etc/caddy/Caddyfile"
DEFAULT_PHP_BINARY = "php"
DEFAULT_COMPOSER_BINARY = "composer"

# Source exclusions for in-place copies
IN_PLACE_EXCLUDES = [".git", "node_modules", DEPLOYMENT_METADATA_FILE]

# Error codes
class ErrorCode:
    LAYOUT_ERROR = "RD001"
    RELEASE_COLLISION = "RD002"
    LOCK_CONTENTION = "RD003"
    BACKUP_FAILURE = "RD004"
    STAGING_FAILURE = "RD005"
    HOOK_FAILURE = "RD006"
    SWITCH_FAILURE = "RD007"
    RELOAD_FAILURE = "RD008"
    MAINTENANCE_EXIT_FAILURE = "RD009"
    CONFIG_ERROR = "RD010"
    VALIDATION_ERROR = "RD011"
    CANCELLED = "RD012"
    RELEASE_NOT_FOUND = "RD013"
    MAINTENANCE_ENTER_FAILURE = "RD014"
    WORKER_RESTART_FAILURE = "RD015"
    UNEXPECTED_ERROR = "RD016"

# Environment variables
ENV_CONFIG_PATH = "RELEASE_DEPLOYER_CONFIG"
ENV_LOG_LEVEL = "RELEASE_DEPLOYER_LOG_LEVEL"

# Display constants
EMOJI_SUCCESS = "✓"
EMOJI_ERROR = "✗"
EMOJI_WARNING = "⚠"
EMOJI_ARROW = "→"
EMOJI_LINK = "🔗"

# Messages templates
MSG_DEPLOY_SUCCESS = f"{EMOJI_SUCCESS} Deployed release {{release_id}}"
MSG_LINK_UPDATED = f"{EMOJI_LINK} Link updated: {{link}} {EMOJI_ARROW} {{target}}"
MSG_LOCK_HELD = "Another deployment of {app_root} is in progress"

# Exit code descriptions
EXIT_CODE_MEANINGS = {
    0: "deployment complete",
    1: "failed before any promotion occurred",
    2: "failed after promotion, automatic rollback succeeded",
    3: "failed after promotion, rollback failed (manual intervention required)",
}
