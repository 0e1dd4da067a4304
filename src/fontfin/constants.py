"""
Constants and configuration values for fontfin.

This module contains all hardcoded values, URLs, timeouts, and other constants
used throughout the application.
"""

APP_NAME = "fontfin"

# GitHub API URLs
GITHUB_API_BASE = "https://api.github.com/repos"
GITHUB_LATEST_RELEASE_TEMPLATE = f"{GITHUB_API_BASE}/{{owner}}/{{project}}/releases/latest"
GITHUB_TAGGED_RELEASE_TEMPLATE = (
    f"{GITHUB_API_BASE}/{{owner}}/{{project}}/releases/tags/{{tag}}"
)
GITHUB_API_HOST = "api.github.com"
DEFAULT_RELEASE_TAG = "latest"

# Network timeouts (in seconds)
DEFAULT_REQUEST_TIMEOUT = 30

# Download configuration defaults
DEFAULT_CONNECT_RETRIES = 5
DEFAULT_BACKOFF_FACTOR = 0.3
DEFAULT_CHUNK_SIZE = 8192
RETRY_STATUS_FORCELIST = (408, 429, 500, 502, 503, 504)

# Checksum hashing reads data in chunks of this size
HASH_CHUNK_SIZE = 8192

# Placeholder tokens in descriptor fields
TAG_PLACEHOLDER = "$tag"
FILE_PLACEHOLDER = "$file"

# Characters never allowed in repository owner/project names
FORBIDDEN_REPOSITORY_CHARS = "/?#&$\\"

# Characters replaced with "_" when turning a URL into a cache filename
CACHE_FILENAME_REPLACED_CHARS = "*/\\<>:|?=#"
CACHE_FILENAME_MAX_LENGTH = 80
CACHE_FILENAME_HASH_LENGTH = 8
CACHE_FILE_EXTENSION = ".json"

# Page cache polling while another caller fetches the same URL (seconds)
PAGE_CACHE_POLL_INTERVAL = 0.02

# Cancellation is checked this often while waiting on a worker (seconds)
CANCEL_POLL_INTERVAL = 0.1

# Characters that terminate a URL scraped out of webpage text
URL_TERMINATOR_CHARS = "\"'<> \t\r\n"

# Archive extensions
ZIP_EXTENSION = ".zip"
TAR_EXTENSION = ".tar"
TAR_GZ_EXTENSIONS = (".tar.gz", ".tgz")
TAR_XZ_EXTENSIONS = (".tar.xz", ".txz")

# Supported checksum algorithms (hashlib names)
CHECKSUM_ALGORITHMS = ("sha224", "sha256", "sha384", "sha512")

# File and directory names
INSTALLERS_DIR_NAME = "installers"
INSTALLER_FILE_EXTENSION = ".yaml"
PAGES_DIR_NAME = "pages"
STAGING_DIR_NAME = "staging"
LOCK_FILE_NAME = "lock"
CONFIG_FILE_NAME = "config.yaml"
INSTALLED_FILE_NAME = "installed.yaml"

# Configuration defaults
DEFAULT_INSTALL_DIR = "~/.local/share/fonts"
DEFAULT_CACHE_TIMEOUT = 90  # minutes
DEFAULT_MAX_WORKERS = 8
MIN_INSTALL_DIR_DEPTH = 2

# Lock states written by mutating actions
LOCK_INSTALLING = "installing"
LOCK_REINSTALLING = "reinstalling"
LOCK_UPDATING = "updating"
LOCK_REMOVING = "removing"

# Progress stage names
STAGE_DOWNLOAD = "download"
STAGE_VERIFY = "verify"
STAGE_STAGE = "stage"
STAGE_INSTALL = "install"

# Logging configuration
LOGGER_NAME = "fontfin"
LOG_LEVEL_ENV_VAR = "FONTFIN_LOG_LEVEL"
LOG_FILE_NAME = "fontfin.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10MB
LOG_FILE_BACKUP_COUNT = 5
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = (
    "%(asctime)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s"
)
