"""Centralized constants for the image updater."""

# Version checks
DEFAULT_SOURCE_TIMEOUT_MS = 8000
DEFAULT_OVERALL_TIMEOUT_MS = 15000
LOCAL_GIT_TIMEOUT_MS = 30000
CHECK_CACHE_TTL_SECONDS = 30

# Update locks (15 minutes)
UPDATE_LOCK_TIMEOUT_SECONDS = 900

# Health checks
HEALTH_CHECK_INTERVAL_MS = 1000

# Remote APIs
REGISTRY_API_BASE = "https://hub.docker.com/v2"
GITHUB_API_BASE = "https://api.github.com"
HTTP_USER_AGENT = "image-updater/1.0"
