from .models import RoutingResourceKey


class StatusError(Exception):
    """Base class for status propagation errors."""


class PatchFailedError(StatusError):
    """The API server rejected, or never received, a status write."""

    def __init__(self, key: RoutingResourceKey, cause: BaseException):
        super().__init__(f"Failed to patch status of {key}: {cause}")
        self.key = key
        self.cause = cause


class DuplicateSeedError(StatusError):
    """A key was seeded into the status cache twice."""

    def __init__(self, key: RoutingResourceKey):
        super().__init__(f"{key} is already present in the status cache")
        self.key = key
