"""Domain exceptions -- catch specific, re-raise with context.

A cache miss is a normal return value and has no exception here.
"""


class AnalysisCacheError(Exception):
    """Root for all cache errors."""


class InvalidKeyError(AnalysisCacheError):
    """Missing or malformed owner id / analysis type. Never retried."""

    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"Invalid cache key {field}: {value!r}")
        self.field = field
        self.value = value


class InvalidConfigurationError(AnalysisCacheError):
    """Non-positive TTL or interval. Never retried."""

    def __init__(self, name: str, value: object) -> None:
        super().__init__(f"Invalid configuration {name}: {value!r} (must be positive)")
        self.name = name
        self.value = value


class StorageError(AnalysisCacheError):
    """Backing table unreachable or returned an error."""

    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(f"[{operation}] storage failure: {detail}")
        self.operation = operation
        self.detail = detail
