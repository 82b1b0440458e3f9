"""
Shared constants for the static cloner.

Contains the configuration defaults used when a key is missing from the
config file.
"""

# Default user agent string for all HTTP requests
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; StaticCloner/1.0; "
    "+https://github.com/static-cloner/static-cloner)"
)

# Default request timeout in milliseconds
DEFAULT_TIMEOUT_MS = 30000

# Default concurrent downloads per phase
DEFAULT_CONCURRENCY = 5

# Retry policy: attempts per request and base delay (milliseconds)
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_MS = 1000

# Maximum pages to discover by default
DEFAULT_MAX_PAGES = 100

# Maximum crawl depth by default
DEFAULT_MAX_DEPTH = 3

# Token bucket defaults
DEFAULT_REQUESTS_PER_SECOND = 5.0
DEFAULT_BURST_SIZE = 10

# Assets above this size are skipped (bytes)
DEFAULT_MAX_FILE_SIZE = 50 * 1024 * 1024

DEFAULT_OUTPUT_DIR = "./output"

MANIFEST_FILENAME = "manifest.json"
DYNAMIC_MANIFEST_FILENAME = "dynamic-manifest.json"
ERRORS_FILENAME = "errors.json"

# Known file extensions per asset type (without the leading dot)
DEFAULT_IMAGE_FORMATS = ["jpg", "jpeg", "png", "gif", "svg", "webp", "ico", "bmp", "avif"]
DEFAULT_CSS_FORMATS = ["css"]
DEFAULT_JS_FORMATS = ["js", "mjs", "cjs"]
DEFAULT_FONT_FORMATS = ["woff", "woff2", "ttf", "otf", "eot"]
DEFAULT_VIDEO_FORMATS = ["mp4", "webm", "ogg", "avi", "mov"]

# Reference schemes that are never fetched or rewritten
SPECIAL_PROTOCOLS = ("data:", "mailto:", "tel:", "javascript:", "about:")
