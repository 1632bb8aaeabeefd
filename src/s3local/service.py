"""Resolution of bucket notifications from a serverless service definition."""
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import structlog
import yaml

from s3local.errors import ConfigurationError
from s3local.events.types import DEFAULT_EVENT, FilterRule, NotificationDeclaration

logger = structlog.get_logger()

SUPPORTED_RUNTIMES: tuple[str, ...] = ("nodejs", "python", "ruby")
BUCKET_RESOURCE_TYPE = "AWS::S3::Bucket"
ADDITIONAL_STACKS_PLUGIN = "additional-stacks"
EXISTING_S3_PLUGIN = "existing-s3"


def load_service(path: Path) -> dict[str, Any]:
    """Load a service definition file.

    Args:
        path: Path to ``serverless.yml``.

    Returns:
        Parsed service definition (empty if the file is empty).

    Raises:
        ConfigurationError: If the file is missing or not a YAML mapping.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Service file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid service file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Service file {path} must contain a mapping")
    return data


def _mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


class ServiceDefinition:
    """Read-only view over a serverless service definition.

    Attributes:
        path: Directory handler paths are relative to.
    """

    def __init__(self, data: dict[str, Any], path: Path | None = None) -> None:
        self._data = data
        self.path = path or Path.cwd()

    @classmethod
    def from_file(cls, file: Path) -> "ServiceDefinition":
        file = Path(file)
        return cls(load_service(file), file.resolve().parent)

    @property
    def provider(self) -> dict[str, Any]:
        return _mapping(self._data.get("provider"))

    @property
    def custom(self) -> dict[str, Any]:
        return _mapping(self._data.get("custom"))

    @property
    def functions(self) -> dict[str, Any]:
        return _mapping(self._data.get("functions"))

    def s3_options(self) -> dict[str, Any]:
        """Plugin options declared under ``custom.s3``."""
        return _mapping(self.custom.get("s3"))

    def runtime(self, provided_runtime: str | None = None) -> str | None:
        """Runtime of the service.

        Args:
            provided_runtime: Runtime to use when the provider declares
                ``provided``.

        Returns:
            Runtime name, or None for runtimes that are not supported.

        Raises:
            ConfigurationError: If the runtime is missing, not a string, or
                ``provided`` without a substitute.
        """
        runtime = self.provider.get("runtime")
        if runtime is None:
            raise ConfigurationError('Missing required property "runtime" for provider.')
        if not isinstance(runtime, str):
            raise ConfigurationError('Provider configuration property "runtime" wasn\'t a string.')

        if runtime == "provided":
            if not provided_runtime:
                raise ConfigurationError(
                    'Runtime "provided" is unsupported. '
                    "Please add a --provided-runtime CLI option."
                )
            runtime = provided_runtime

        if not runtime.startswith(SUPPORTED_RUNTIMES):
            logger.warning("unsupported_runtime", runtime=runtime)
            return None
        return runtime

    def plugins(self) -> list[str]:
        plugins = self._data.get("plugins") or []
        if isinstance(plugins, dict):
            plugins = plugins.get("modules") or []
        return [p for p in plugins if isinstance(p, str)]

    def has_plugin(self, name: str, strict: bool = False) -> bool:
        """Check whether a plugin is enabled.

        Args:
            name: Plugin name, or a fragment of it when not strict.
            strict: Require an exact match.
        """
        if strict:
            return name in self.plugins()
        return any(name in plugin for plugin in self.plugins())

    def additional_stacks(self) -> list[dict[str, Any]]:
        stacks = _mapping(self.custom.get("additionalStacks"))
        return [_mapping(stack) for stack in stacks.values()]

    def resources(self) -> dict[str, Any]:
        """CloudFormation resources, including additional stacks when enabled."""
        resources = dict(_mapping(_mapping(self._data.get("resources")).get("Resources")))
        if self.has_plugin(ADDITIONAL_STACKS_PLUGIN):
            for stack in self.additional_stacks():
                resources.update(_mapping(stack.get("Resources")))
        return resources

    def resource_for_bucket(self, bucket: str | dict[str, Any]) -> dict[str, Any] | None:
        """Find the bucket resource for a bucket name or ``{Ref: ...}``.

        A plain name is looked up by its generated logical id,
        ``S3Bucket`` followed by the capitalized name.
        """
        if isinstance(bucket, dict):
            logical_id = bucket.get("Ref")
        else:
            logical_id = f"S3Bucket{bucket[:1].upper()}{bucket[1:]}"
        resource = self.resources().get(logical_id) if logical_id else None
        return _mapping(resource) or None

    def bucket_name(self, bucket: str | dict[str, Any]) -> str:
        """Dereference a bucket declaration to a literal bucket name.

        Raises:
            ConfigurationError: If a reference has no matching resource.
        """
        resource = self.resource_for_bucket(bucket)
        name = _mapping(resource.get("Properties")).get("BucketName") if resource else None
        if name:
            return str(name)
        if isinstance(bucket, str):
            return bucket
        raise ConfigurationError(f"Cannot resolve bucket reference {bucket!r}")

    def _s3_events(self) -> Iterator[tuple[str, dict[str, Any], str | dict[str, Any]]]:
        """Yield ``(function name, function, event declaration)`` for s3 events."""
        existing = self.has_plugin(EXISTING_S3_PLUGIN)
        for name, function in self.functions.items():
            function = _mapping(function)
            for event in function.get("events") or []:
                event = _mapping(event)
                if "s3" in event:
                    yield name, function, event["s3"]
                elif existing and "existingS3" in event:
                    yield name, function, event["existingS3"]

    def bucket_names(self, extra: list[str] | None = None) -> list[str]:
        """All bucket names to create, deduplicated in first-seen order.

        Args:
            extra: Bucket names from plugin options.
        """
        names: list[str] = list(extra or [])

        for resource in self.resources().values():
            resource = _mapping(resource)
            if resource.get("Type") != BUCKET_RESOURCE_TYPE:
                continue
            name = _mapping(resource.get("Properties")).get("BucketName")
            if name:
                names.append(str(name))

        for function_name, _, s3 in self._s3_events():
            bucket = s3.get("bucket") if isinstance(s3, dict) else s3
            if bucket is None:
                continue
            try:
                names.append(self.bucket_name(bucket))
            except ConfigurationError as e:
                logger.warning("bucket_unresolved", function=function_name, error=str(e))

        return list(dict.fromkeys(names))

    def declarations(
        self,
        provided_runtime: str | None = None,
        errors: list[ConfigurationError] | None = None,
    ) -> list[NotificationDeclaration]:
        """Notification declarations in function and event order.

        Args:
            provided_runtime: Runtime to use when the provider says "provided".
            errors: When given, a malformed s3 event is logged, appended here
                and skipped instead of raised.

        Raises:
            ConfigurationError: If an event is malformed or its bucket
                reference cannot be resolved, and no error list was given.
        """
        default_runtime = self.provider.get("runtime")
        if default_runtime == "provided":
            default_runtime = provided_runtime
        default_timeout = self.provider.get("timeout")

        result: list[NotificationDeclaration] = []
        for function_name, function, s3 in self._s3_events():
            try:
                result.extend(
                    self._event_declarations(function_name, function, s3, default_runtime, default_timeout)
                )
            except ConfigurationError as e:
                if errors is None:
                    raise
                logger.warning("subscription_skipped", function=function_name, error=str(e))
                errors.append(e)
        return result

    def _event_declarations(
        self,
        function_name: str,
        function: dict[str, Any],
        s3: str | dict[str, Any],
        default_runtime: Any,
        default_timeout: Any,
    ) -> list[NotificationDeclaration]:
        handler = function.get("handler")
        if not isinstance(handler, str):
            raise ConfigurationError(f"Function {function_name} has no handler")

        if isinstance(s3, dict):
            bucket = s3.get("bucket")
            events = s3.get("events") or [s3.get("event") or DEFAULT_EVENT]
            rules = s3.get("rules") or []
        else:
            bucket, events, rules = s3, [DEFAULT_EVENT], []

        if bucket is None:
            raise ConfigurationError(f"Function {function_name} has an s3 event without a bucket")
        if not isinstance(rules, list) or not all(isinstance(r, dict) for r in rules):
            raise ConfigurationError(f"Function {function_name} has malformed s3 rules")

        bucket_name = self.bucket_name(bucket)
        filter_rules = tuple(FilterRule(prefix=r.get("prefix"), suffix=r.get("suffix")) for r in rules)
        return [
            NotificationDeclaration(
                function_name=function_name,
                handler=handler,
                bucket=bucket_name,
                event=str(event),
                rules=filter_rules,
                runtime=function.get("runtime") or default_runtime,
                timeout=function.get("timeout") or default_timeout,
            )
            for event in events
        ]
