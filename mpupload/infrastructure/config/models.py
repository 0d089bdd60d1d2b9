"""
Configuration models and data structures.

This module defines the configuration models used by the uploader,
providing type safety and validation for configuration values.
"""

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ...core.exceptions import InvalidArgumentError
from ...core.interfaces.upload import ProgressSink

DEFAULT_PART_SIZE = 10 * 1024 * 1024  # 10 MiB
DEFAULT_NUM_RETRIES = 3
DEFAULT_BASE_DELAY = 0.3
DEFAULT_JITTER = 0.1
DEFAULT_ABORT_TIMEOUT = 15.0
DEFAULT_PROGRESS_GRANULARITY = 64 * 1024
DEFAULT_ENDPOINT = "https://api.cape-dev.org/capi-dev"


@dataclass
class UploadConfig:
    """
    Settings for a single multipart upload.

    ``cancellation_signal`` and ``progress_sink`` are runtime hooks and are
    never serialized.
    """
    endpoint_base: str
    bucket: str
    key: str
    part_size: int = DEFAULT_PART_SIZE
    num_retries: int = DEFAULT_NUM_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    jitter: float = DEFAULT_JITTER
    request_timeout: Optional[float] = None
    abort_timeout: float = DEFAULT_ABORT_TIMEOUT
    progress_granularity: int = DEFAULT_PROGRESS_GRANULARITY
    cancellation_signal: Optional[asyncio.Event] = None
    progress_sink: Optional[ProgressSink] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        for name in ("endpoint_base", "bucket", "key"):
            if not getattr(self, name):
                raise InvalidArgumentError(f"{name} must not be empty")
        self.endpoint_base = self.endpoint_base.rstrip("/")

        if isinstance(self.num_retries, bool) or not isinstance(self.num_retries, int) \
                or self.num_retries < 0:
            raise InvalidArgumentError(
                f"num_retries must be a non-negative integer, got {self.num_retries}")
        if self.progress_granularity <= 0:
            raise InvalidArgumentError(
                f"progress_granularity must be positive, got {self.progress_granularity}")

        delays = [
            ("base_delay", self.base_delay),
            ("jitter", self.jitter),
        ]
        for name, value in delays:
            if not math.isfinite(value) or value < 0:
                raise InvalidArgumentError(f"{name} must be non-negative, got {value}")

        timeouts = [
            ("request_timeout", self.request_timeout),
            ("abort_timeout", self.abort_timeout),
        ]
        for name, timeout in timeouts:
            if timeout is not None and timeout <= 0:
                raise InvalidArgumentError(f"{name} must be positive, got {timeout}")

    @property
    def cancelled(self) -> bool:
        return self.cancellation_signal is not None and self.cancellation_signal.is_set()


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    log_directory: str = "logs"
    max_file_size: str = "10 MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = False


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    name: str = "mpupload"
    version: str = "0.1.0"
    environment: str = "production"

    # Upload defaults
    endpoint_base: str = DEFAULT_ENDPOINT
    part_size: int = DEFAULT_PART_SIZE
    num_retries: int = DEFAULT_NUM_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    jitter: float = DEFAULT_JITTER
    request_timeout: Optional[float] = None
    abort_timeout: float = DEFAULT_ABORT_TIMEOUT

    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file_path: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.endpoint_base:
            raise ValueError("endpoint_base must not be empty")
        if self.part_size <= 0:
            raise ValueError(f"part_size must be positive, got {self.part_size}")
        if self.num_retries < 0:
            raise ValueError(f"num_retries must be non-negative, got {self.num_retries}")
        if self.abort_timeout <= 0:
            raise ValueError(f"abort_timeout must be positive, got {self.abort_timeout}")

    def upload_config(self, bucket: str, key: str, **overrides: Any) -> UploadConfig:
        """
        Build the settings for one upload from the application defaults.

        Args:
            bucket: Target bucket
            key: Target object key
            **overrides: Any UploadConfig field to override

        Returns:
            Validated upload configuration
        """
        values: Dict[str, Any] = {
            "endpoint_base": self.endpoint_base,
            "bucket": bucket,
            "key": key,
            "part_size": self.part_size,
            "num_retries": self.num_retries,
            "base_delay": self.base_delay,
            "jitter": self.jitter,
            "request_timeout": self.request_timeout,
            "abort_timeout": self.abort_timeout,
        }
        values.update(overrides)
        return UploadConfig(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        result = {}

        for field_name, field_value in self.__dict__.items():
            if hasattr(field_value, '__dict__'):
                result[field_name] = dict(field_value.__dict__)
            else:
                result[field_name] = field_value

        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApplicationConfig':
        """Create configuration from dictionary."""
        logging_config = LoggingConfig(**data.get('logging', {}))

        return cls(
            name=data.get('name', 'mpupload'),
            version=data.get('version', '0.1.0'),
            environment=data.get('environment', 'production'),
            endpoint_base=data.get('endpoint_base', DEFAULT_ENDPOINT),
            part_size=int(data.get('part_size', DEFAULT_PART_SIZE)),
            num_retries=int(data.get('num_retries', DEFAULT_NUM_RETRIES)),
            base_delay=float(data.get('base_delay', DEFAULT_BASE_DELAY)),
            jitter=float(data.get('jitter', DEFAULT_JITTER)),
            request_timeout=data.get('request_timeout'),
            abort_timeout=float(data.get('abort_timeout', DEFAULT_ABORT_TIMEOUT)),
            logging=logging_config,
            config_file_path=data.get('config_file_path')
        )
