"""Configuration loaded from environment, service file and CLI flags."""
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# custom.s3 keys in the service file mapped to settings fields
SERVICE_OPTION_MAP: dict[str, str] = {
    "host": "host",
    "address": "host",
    "port": "port",
    "directory": "directory",
    "buckets": "buckets",
    "noStart": "no_start",
    "silent": "silent",
    "region": "region",
    "providedRuntime": "provided_runtime",
    "dispatchTimeout": "dispatch_timeout",
    "debounceMs": "debounce_ms",
    "failFast": "fail_fast",
}


class Settings(BaseSettings):
    """s3local configuration loaded from environment variables.

    Attributes:
        host: Bind address for the S3 endpoint.
        port: Port number for the S3 endpoint.
        directory: Root directory holding bucket data.
        service_file: Serverless service definition to read.
        buckets: Extra buckets to create on start.
        no_start: Only watch the directory, do not serve HTTP.
        silent: Only log warnings and errors.
        debug: Enable debug logging.
        region: Region reported in events and handler contexts.
        provided_runtime: Runtime substituted for ``provided``.
        dispatch_timeout: Handler timeout when a function declares none.
        debounce_ms: Debounce window for filesystem events.
        fail_fast: Abort on the first bad notification declaration.
        outcome_queue_size: Maximum size of each outcome subscriber queue.
        outcome_max_subscribers: Maximum concurrent outcome subscribers.
        sse_heartbeat_interval: Seconds between SSE heartbeat events.
        shutdown_timeout: Seconds to wait for in-flight handlers on exit.
    """

    model_config = SettingsConfigDict(
        env_prefix="S3LOCAL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 4569
    directory: Path = Path("./buckets")
    service_file: Path = Path("serverless.yml")
    buckets: list[str] = Field(default_factory=list)
    no_start: bool = False
    silent: bool = False
    debug: bool = False
    region: str = "us-east-1"
    provided_runtime: str | None = None

    dispatch_timeout: float = 6.0
    debounce_ms: int = 50
    fail_fast: bool = False
    outcome_queue_size: int = 100
    outcome_max_subscribers: int = 100
    sse_heartbeat_interval: float = 15.0
    shutdown_timeout: float = 30.0

    @property
    def endpoint(self) -> str:
        return f"http://{self.host}:{self.port}"

    def merged(self, service_options: dict[str, Any], overrides: dict[str, Any]) -> "Settings":
        """Layer service file options and explicit overrides on top.

        Args:
            service_options: ``custom.s3`` mapping from the service file.
            overrides: Values from CLI flags; None values are ignored.

        Returns:
            New validated settings instance.
        """
        values = self.model_dump()
        for key, value in service_options.items():
            field = SERVICE_OPTION_MAP.get(key)
            if field is not None:
                values[field] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return Settings.model_validate(values)
