from google.api_core import exceptions as api_exceptions
from pydantic import ValidationError

# Backend failures are surfaced unmodified; these aliases name them locally.
BackendError = api_exceptions.GoogleAPICallError
NotFound = api_exceptions.NotFound
AlreadyExists = api_exceptions.AlreadyExists
PermissionDenied = api_exceptions.PermissionDenied
Unauthenticated = api_exceptions.Unauthenticated
Unavailable = api_exceptions.ServiceUnavailable
DeadlineExceeded = api_exceptions.DeadlineExceeded


class InvalidArgument(ValueError):
    def __init__(self, message: str, field: str | None = None):
        if field is not None:
            message = f'{field}: {message}'
        super().__init__(message)
        self.field = field

    @classmethod
    def from_validation_error(cls, error: ValidationError) -> 'InvalidArgument':
        first = error.errors()[0]
        location = '.'.join(str(part) for part in first['loc']) or None
        message = str(first['msg']).removeprefix('Value error, ')
        return cls(message, field=location)
