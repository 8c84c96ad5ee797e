"""Outcome of a non-raising query."""

from typing import TYPE_CHECKING, Optional, cast

from chquery.exceptions import ServerError

if TYPE_CHECKING:
    from chquery.pipeline import QueryResponse

__all__ = ("QueryResult",)


class QueryResult:
    """Either the response to a query or the error that prevented one.

    A response with a non-success status is still a response: ClickHouse error
    text stays in its body. Use :meth:`raise_for_status` to turn it into a
    :class:`~chquery.exceptions.ServerError`.
    """

    __slots__ = ("error", "response")

    def __init__(self, response: "Optional[QueryResponse]" = None, error: "Optional[Exception]" = None) -> None:
        if (response is None) == (error is None):
            msg = "QueryResult needs exactly one of response or error."
            raise ValueError(msg)
        self.response = response
        self.error = error

    def __repr__(self) -> str:
        if self.error is not None:
            return f"QueryResult(error={self.error!r})"
        return f"QueryResult(response={self.response!r})"

    def __bool__(self) -> bool:
        return self.ok

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> "QueryResponse":
        """Return the response, raising the captured error if there is one."""
        if self.error is not None:
            raise self.error
        return cast("QueryResponse", self.response)

    def raise_for_status(self) -> "QueryResponse":
        """Return the response if it has a success status.

        Raises:
            ServerError: ClickHouse answered with a non-success status.
        """
        response = self.unwrap()
        if not response.is_success:
            raise ServerError(response.status, response.body)
        return response
