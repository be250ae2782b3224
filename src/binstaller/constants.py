"""Centralized constants for binstaller."""

# Release source
DEFAULT_RELEASE_HOST = "github.com"
DEFAULT_USER_AGENT = "binstaller"

# Redirects (metadata lookups and asset downloads)
MAX_REDIRECTS = 5
API_REDIRECT_STATUSES = frozenset({301, 302})

# Deadlines (seconds)
HTTP_TIMEOUT = 30.0
PROBE_TIMEOUT = 10.0

# Installed binaries are owner-executable only
DEFAULT_BINARY_MODE = 0o744

# Download streaming
DOWNLOAD_CHUNK_SIZE = 64 * 1024

# Local version probe
VERSION_FLAG = "--version"
