from dataclasses import asdict, dataclass

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler


class EditorError(Exception):
    """Base class for every failure the editor raises on purpose."""


@dataclass(frozen=True)
class OperationError:
    index: int
    operation: str
    field: str
    message: str


class ValidationError(EditorError):
    """An operation chain was rejected before any side effect took place."""

    def __init__(self, errors: list[OperationError]):
        self.errors = list(errors)
        summary = "; ".join(f"#{e.index} {e.operation}.{e.field}: {e.message}" for e in self.errors)
        super().__init__(f"Invalid operation chain: {summary}")

    def as_list(self) -> list[dict]:
        return [asdict(e) for e in self.errors]


class ProcessingError(EditorError):
    def __init__(self, message: str, *, record_id=None):
        self.record_id = record_id
        super().__init__(message)


class MissingResourceError(EditorError):
    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class InfrastructureError(EditorError):
    """Broker, blob store or worker pool is unavailable."""


class LifecycleError(EditorError):
    """A record handed to the lifecycle manager cannot carry a status."""


class RetryExhaustedError(EditorError):
    def __init__(self, record, ceiling: int):
        self.record = record
        self.ceiling = ceiling
        super().__init__(f"{record!r} reached the retry ceiling of {ceiling}")


_STATUS_BY_ERROR = (
    (MissingResourceError, status.HTTP_404_NOT_FOUND),
    (ProcessingError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InfrastructureError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def api_exception_handler(exc, context):
    """DRF exception handler that knows about the editor error taxonomy."""
    if isinstance(exc, ValidationError):
        return Response({"detail": "Invalid operation chain", "errors": exc.as_list()}, status=400)
    for error_cls, http_status in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            body = {"detail": str(exc)}
            record_id = getattr(exc, "record_id", None)
            if record_id is not None:
                body["record_id"] = str(record_id)
            return Response(body, status=http_status)
    return exception_handler(exc, context)
