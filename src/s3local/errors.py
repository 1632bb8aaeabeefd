"""Exception hierarchy for s3local."""


class S3LocalError(Exception):
    """Base class for all s3local errors."""


class ConfigurationError(S3LocalError):
    """Malformed or unresolvable notification configuration."""


class AlreadyAttachedError(S3LocalError):
    """Supervisor attach called while a listener is already attached."""


class SupervisorClosedError(S3LocalError):
    """Supervisor used after shutdown."""


class DispatchFailure(S3LocalError):
    """A handler invocation failed or timed out.

    Attributes:
        function_name: Name of the function that was invoked.
        reason: Human readable failure cause.
        timed_out: Whether the handler exceeded its timeout.
        request_id: Request id of the failed invocation.
        duration_ms: Time spent before the failure.
    """

    def __init__(
        self,
        function_name: str,
        reason: str,
        *,
        timed_out: bool = False,
        request_id: str = "",
        duration_ms: float = 0.0,
    ) -> None:
        super().__init__(f"{function_name}: {reason}")
        self.function_name = function_name
        self.reason = reason
        self.timed_out = timed_out
        self.request_id = request_id
        self.duration_ms = duration_ms


class StorageError(S3LocalError):
    """Base class for storage emulator errors.

    Attributes:
        code: S3 error code reported over HTTP.
        status_code: HTTP status for the error.
    """

    code = "InternalError"
    status_code = 500


class NoSuchBucketError(StorageError):
    code = "NoSuchBucket"
    status_code = 404

    def __init__(self, bucket: str) -> None:
        super().__init__(f"The specified bucket does not exist: {bucket}")
        self.bucket = bucket


class NoSuchKeyError(StorageError):
    code = "NoSuchKey"
    status_code = 404

    def __init__(self, bucket: str, key: str) -> None:
        super().__init__(f"The specified key does not exist: {bucket}/{key}")
        self.bucket = bucket
        self.key = key


class InvalidBucketNameError(StorageError):
    code = "InvalidBucketName"
    status_code = 400

    def __init__(self, bucket: str) -> None:
        super().__init__(f"The specified bucket is not valid: {bucket}")
        self.bucket = bucket


class InvalidKeyError(StorageError):
    code = "InvalidArgument"
    status_code = 400

    def __init__(self, key: str) -> None:
        super().__init__(f"The specified key is not valid: {key!r}")
        self.key = key


class KeyConflictError(StorageError):
    """Key cannot be stored next to an existing object or key prefix.

    Keys are files, so ``a`` and ``a/b`` cannot both exist in one bucket.
    """

    code = "KeyConflict"
    status_code = 409

    def __init__(self, bucket: str, key: str) -> None:
        super().__init__(f"The specified key conflicts with an existing object or prefix: {bucket}/{key}")
        self.bucket = bucket
        self.key = key


class BucketRemovalError(StorageError):
    """Bucket removal failed for a reason other than a missing bucket."""

    def __init__(self, bucket: str, cause: str) -> None:
        super().__init__(f"failed to delete bucket {bucket}: {cause}")
        self.bucket = bucket
        self.cause = cause
