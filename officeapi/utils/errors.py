from fastapi import HTTPException, Request


class LineQueryError(Exception):
    """Base class for failures while selecting lines."""


class InvalidLineFilter(LineQueryError):
    """
    Raised when a filter or projection cannot be used for a query.

    Always raised before the database is touched.

    Args:
        errors: One entry per rejected field, shaped like pydantic error dicts.
    """

    def __init__(self, errors: list[dict]) -> None:
        self.errors = errors
        super().__init__("; ".join(error["msg"] for error in errors))


class StorageError(LineQueryError):
    """Raised when the database or the connection to it fails."""


class QueryCancelled(LineQueryError):
    """Raised when a line query hits its deadline or is cancelled by the server."""


def raise_not_found(request: Request) -> None:
    """
    Raise a 404 Not Found HTTPException when no line matches the request.

    Args:
        request: The incoming request object, used to construct the error message.
    """
    message = f"No lines found for '{request.url.path}'"
    raise HTTPException(status_code=404, detail=message)
