"""Error taxonomy shared by the store, the aggregates and the HTTP layer.

NotFoundError and InvalidOperationError are raised by commands before any
event is appended. ConcurrencyConflictError comes from the store when a
stream version is already taken; events appended earlier in the same
command stay appended. StorageFailureError wraps anything else the database
raises and is never retried.
"""


class YakatakaError(Exception):
    """Base class for every error this package raises on purpose."""


class NotFoundError(YakatakaError):
    def __init__(self, kind: str, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} not found: {entity_id}")


class InvalidOperationError(YakatakaError):
    pass


class ConcurrencyConflictError(YakatakaError):
    def __init__(self, stream_type: str, stream_id: str, version: int) -> None:
        self.stream_type = stream_type
        self.stream_id = stream_id
        self.version = version
        super().__init__(
            f"Concurrency conflict: version {version} already exists"
            f" for {stream_type} {stream_id}"
        )


class StorageFailureError(YakatakaError):
    pass
