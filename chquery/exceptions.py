from typing import Any, Optional

from httpx import TransportError

__all__ = (
    "CHQueryError",
    "ImproperConfigurationError",
    "MissingDependencyError",
    "MissingSQLError",
    "ParameterError",
    "SerializationError",
    "ServerError",
    "TransportError",
    "UnknownFormatError",
    "ValidationError",
)


class CHQueryError(Exception):
    """Base exception class from which all chquery exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``CHQueryError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


class MissingDependencyError(CHQueryError, ImportError):
    """Missing optional dependency.

    This exception is raised only when a feature depends on a dependency that has not been installed.
    """

    def __init__(self, package: str, install_package: Optional[str] = None, feature: Optional[str] = None) -> None:
        prefix = f"{feature} - " if feature else ""
        super().__init__(
            f"{prefix}Package {package!r} is not installed but required. You can install it by running "
            f"'pip install chquery[{install_package or package}]' to install chquery with the required extra "
            f"or 'pip install {package}' to install the package separately",
        )
        self.package = package


class ImproperConfigurationError(CHQueryError):
    """Improper configuration error.

    Raised when client or query options cannot be used to build a request.
    """


class ValidationError(CHQueryError, ValueError):
    """A query was rejected before anything was sent to the server."""


class UnknownFormatError(ValidationError):
    """The requested output format is neither a ClickHouse format nor a known alias."""

    format: Any

    def __init__(self, value: Any, aliases: "tuple[str, ...]", formats_page: str) -> None:
        super().__init__(
            f"the given format {value!r} is invalid. Expecting one of {list(aliases)!r} "
            f"or one of the valid options described in {formats_page}"
        )
        self.format = value


class MissingSQLError(ValidationError):
    """No SQL text was supplied for the query."""

    def __init__(self, message: Optional[str] = None) -> None:
        if message is None:
            message = "SQL text is required to query ClickHouse."
        super().__init__(message)


class ParameterError(ValidationError):
    """Query parameters could not be encoded."""


class SerializationError(CHQueryError):
    """Encoding or decoding of an object failed."""


class ServerError(CHQueryError):
    """ClickHouse answered with a non-success status code.

    The body is kept as received so callers can inspect the server's error text.
    """

    status: int
    body: Any

    def __init__(self, status: int, body: Any = None) -> None:
        text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        message = f"ClickHouse responded with status {status}"
        if isinstance(text, str) and text.strip():
            message = f"{message}: {text.strip()}"
        super().__init__(message)
        self.status = status
        self.body = body
