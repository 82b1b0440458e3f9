"""
Configuration for the static cloner.

Loads the JSON configuration file (camelCase keys, one object per section)
into dataclasses and validates the values the pipeline depends on.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from .errors import ConfigError
from .utils.constants import (
    DEFAULT_BURST_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_CSS_FORMATS,
    DEFAULT_FONT_FORMATS,
    DEFAULT_IMAGE_FORMATS,
    DEFAULT_JS_FORMATS,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_FILE_SIZE,
    DEFAULT_MAX_PAGES,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_REQUESTS_PER_SECOND,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_DELAY_MS,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
    DEFAULT_VIDEO_FORMATS,
)
from .utils.urls import AssetType, is_valid_url


AUTH_TYPES = ("basic", "bearer")


def _section(data: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be an object")
    return value


def _string_list(values: Any, key: str) -> List[str]:
    if values is None:
        return []
    if not isinstance(values, list):
        raise ConfigError(f"'{key}' must be a list")
    return [str(value) for value in values]


def _formats(values: Any, default: List[str], key: str) -> FrozenSet[str]:
    if values is None:
        return frozenset(default)
    return frozenset(value.lower().lstrip(".") for value in _string_list(values, key))


@dataclass
class TargetConfig:
    """Site to clone."""

    url: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TargetConfig":
        return cls(url=str(data.get("url", "")).strip())


@dataclass
class CrawlingConfig:
    """Scope rules for the enumerator."""

    max_depth: int = DEFAULT_MAX_DEPTH
    max_pages: int = DEFAULT_MAX_PAGES
    same_domain_only: bool = True
    include_subdomains: bool = False
    respect_robots_txt: bool = True
    follow_redirects: bool = True
    ignore_patterns: List[str] = field(default_factory=list)
    allowed_patterns: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CrawlingConfig":
        return cls(
            max_depth=int(data.get("maxDepth", DEFAULT_MAX_DEPTH)),
            max_pages=int(data.get("maxPages", DEFAULT_MAX_PAGES)),
            same_domain_only=bool(data.get("sameDomainOnly", True)),
            include_subdomains=bool(data.get("includeSubdomains", False)),
            respect_robots_txt=bool(data.get("respectRobotsTxt", True)),
            follow_redirects=bool(data.get("followRedirects", True)),
            ignore_patterns=_string_list(data.get("ignorePatterns"), "ignorePatterns"),
            allowed_patterns=_string_list(data.get("allowedPatterns"), "allowedPatterns"),
        )


@dataclass
class AuthConfig:
    """HTTP authentication sent with every request."""

    type: str = "basic"
    username: Optional[str] = None
    password: Optional[str] = None
    bearer_token: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuthConfig":
        auth_type = str(data.get("type", "basic")).lower()
        if auth_type not in AUTH_TYPES:
            raise ConfigError(f"Unknown authentication type: {auth_type}")
        return cls(
            type=auth_type,
            username=data.get("username"),
            password=data.get("password"),
            bearer_token=data.get("bearerToken"),
        )


@dataclass
class NetworkConfig:
    """HTTP client settings shared by both crawl phases."""

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    user_agent: str = DEFAULT_USER_AGENT
    headers: Dict[str, str] = field(default_factory=dict)
    concurrency: int = DEFAULT_CONCURRENCY
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    cookies: List[str] = field(default_factory=list)
    authentication: Optional[AuthConfig] = None

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @property
    def retry_delay_seconds(self) -> float:
        return self.retry_delay_ms / 1000

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NetworkConfig":
        auth = data.get("authentication")
        headers = _section(data, "headers")
        return cls(
            timeout_ms=int(data.get("timeout", DEFAULT_TIMEOUT_MS)),
            user_agent=str(data.get("userAgent", DEFAULT_USER_AGENT)),
            headers={str(k): str(v) for k, v in headers.items()},
            concurrency=int(data.get("concurrency", DEFAULT_CONCURRENCY)),
            retry_attempts=int(data.get("retryAttempts", DEFAULT_RETRY_ATTEMPTS)),
            retry_delay_ms=int(data.get("retryDelay", DEFAULT_RETRY_DELAY_MS)),
            cookies=_string_list(data.get("cookies"), "cookies"),
            authentication=AuthConfig.from_dict(_section(data, "authentication")) if auth else None,
        )


@dataclass
class AssetConfig:
    """Which asset kinds to download and how large they may be."""

    download_images: bool = True
    download_css: bool = True
    download_js: bool = True
    download_fonts: bool = True
    download_videos: bool = True
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    image_formats: FrozenSet[str] = frozenset(DEFAULT_IMAGE_FORMATS)
    css_formats: FrozenSet[str] = frozenset(DEFAULT_CSS_FORMATS)
    js_formats: FrozenSet[str] = frozenset(DEFAULT_JS_FORMATS)
    font_formats: FrozenSet[str] = frozenset(DEFAULT_FONT_FORMATS)
    video_formats: FrozenSet[str] = frozenset(DEFAULT_VIDEO_FORMATS)

    @property
    def formats(self) -> Dict[AssetType, FrozenSet[str]]:
        """Extension lists keyed by asset type, for classify_asset()."""
        return {
            AssetType.IMAGE: self.image_formats,
            AssetType.CSS: self.css_formats,
            AssetType.JS: self.js_formats,
            AssetType.FONT: self.font_formats,
            AssetType.VIDEO: self.video_formats,
        }

    def allows(self, asset_type: AssetType) -> bool:
        """Check whether assets of this type should be downloaded."""
        return {
            AssetType.IMAGE: self.download_images,
            AssetType.CSS: self.download_css,
            AssetType.JS: self.download_js,
            AssetType.FONT: self.download_fonts,
            AssetType.VIDEO: self.download_videos,
            AssetType.OTHER: True,
        }[asset_type]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AssetConfig":
        return cls(
            download_images=bool(data.get("downloadImages", True)),
            download_css=bool(data.get("downloadCSS", True)),
            download_js=bool(data.get("downloadJS", True)),
            download_fonts=bool(data.get("downloadFonts", True)),
            download_videos=bool(data.get("downloadVideos", True)),
            max_file_size=int(data.get("maxFileSize", DEFAULT_MAX_FILE_SIZE) or 0),
            image_formats=_formats(data.get("imageFormats"), DEFAULT_IMAGE_FORMATS, "imageFormats"),
            css_formats=_formats(data.get("cssFormats"), DEFAULT_CSS_FORMATS, "cssFormats"),
            js_formats=_formats(data.get("jsFormats"), DEFAULT_JS_FORMATS, "jsFormats"),
            font_formats=_formats(data.get("fontFormats"), DEFAULT_FONT_FORMATS, "fontFormats"),
            video_formats=_formats(data.get("videoFormats"), DEFAULT_VIDEO_FORMATS, "videoFormats"),
        )


@dataclass
class RateLimitConfig:
    """Token bucket settings for the enumerator."""

    enabled: bool = True
    requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND
    burst_size: int = DEFAULT_BURST_SIZE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RateLimitConfig":
        return cls(
            enabled=bool(data.get("enabled", True)),
            requests_per_second=float(data.get("requestsPerSecond", DEFAULT_REQUESTS_PER_SECOND)),
            burst_size=int(data.get("burstSize", DEFAULT_BURST_SIZE)),
        )


@dataclass
class OutputConfig:
    local_directory: str = DEFAULT_OUTPUT_DIR

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OutputConfig":
        return cls(local_directory=str(data.get("localDirectory", DEFAULT_OUTPUT_DIR)))


@dataclass
class DynamicConfig:
    """Dynamic-content marking options."""

    enabled: bool = True
    detect_form_submissions: bool = True
    detect_api_endpoints: bool = True
    detect_empty_divs: bool = False
    marker_attribute: str = "data-dynamic"
    marker_value: str = "true"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DynamicConfig":
        return cls(
            enabled=bool(data.get("enabled", True)),
            detect_form_submissions=bool(data.get("detectFormSubmissions", True)),
            detect_api_endpoints=bool(data.get("detectAPIEndpoints", True)),
            detect_empty_divs=bool(data.get("detectEmptyDivs", False)),
            marker_attribute=str(data.get("markerAttribute", "data-dynamic")),
            marker_value=str(data.get("markerValue", "true")),
        )


@dataclass
class LoggingConfig:
    level: str = "info"
    log_to_file: bool = False
    log_directory: str = "./logs"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LoggingConfig":
        return cls(
            level=str(data.get("level", "info")),
            log_to_file=bool(data.get("logToFile", False)),
            log_directory=str(data.get("logDirectory", "./logs")),
        )


@dataclass
class CloneConfig:
    """Complete configuration of one clone run."""

    target: TargetConfig = field(default_factory=TargetConfig)
    crawling: CrawlingConfig = field(default_factory=CrawlingConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    assets: AssetConfig = field(default_factory=AssetConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    dynamic: DynamicConfig = field(default_factory=DynamicConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CloneConfig":
        """
        Build and validate a configuration from parsed JSON.

        Args:
            data: Top-level config object

        Returns:
            Validated CloneConfig

        Raises:
            ConfigError: If a section has the wrong shape or a value is invalid
        """
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a JSON object")

        try:
            config = cls(
                target=TargetConfig.from_dict(_section(data, "target")),
                crawling=CrawlingConfig.from_dict(_section(data, "crawling")),
                network=NetworkConfig.from_dict(_section(data, "network")),
                assets=AssetConfig.from_dict(_section(data, "assets")),
                rate_limit=RateLimitConfig.from_dict(_section(data, "rateLimit")),
                output=OutputConfig.from_dict(_section(data, "output")),
                dynamic=DynamicConfig.from_dict(_section(data, "dynamic")),
                logging=LoggingConfig.from_dict(_section(data, "logging")),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

        config.validate()
        return config

    def validate(self) -> None:
        """
        Check the values the pipeline relies on.

        Raises:
            ConfigError: On the first invalid value
        """
        if not self.target.url:
            raise ConfigError("target.url is required")
        if not is_valid_url(self.target.url):
            raise ConfigError(f"target.url must be an http(s) URL: {self.target.url}")
        if self.crawling.max_depth < 0:
            raise ConfigError("crawling.maxDepth must be >= 0")
        if self.crawling.max_pages < 1:
            raise ConfigError("crawling.maxPages must be >= 1")
        if self.network.concurrency < 1:
            raise ConfigError("network.concurrency must be >= 1")
        if self.network.retry_attempts < 1:
            raise ConfigError("network.retryAttempts must be >= 1")
        if self.network.timeout_ms <= 0:
            raise ConfigError("network.timeout must be > 0")
        if self.network.retry_delay_ms < 0:
            raise ConfigError("network.retryDelay must be >= 0")
        if self.assets.max_file_size < 0:
            raise ConfigError("assets.maxFileSize must be >= 0")
        if self.rate_limit.enabled:
            if self.rate_limit.requests_per_second <= 0:
                raise ConfigError("rateLimit.requestsPerSecond must be > 0")
            if self.rate_limit.burst_size < 1:
                raise ConfigError("rateLimit.burstSize must be >= 1")


def load_config(config_path: str) -> CloneConfig:
    """
    Load and validate a JSON configuration file.

    Args:
        config_path: Path to the config file

    Returns:
        Validated CloneConfig

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e

    return CloneConfig.from_dict(data)
