"""Request/response pipeline for the ClickHouse HTTP interface.

A :class:`QueryRequest` carries everything needed to build one HTTP call,
including the ordered request steps that shape it before it is sent and the
response steps that post-process what comes back. Steps are plain functions:

- a request step takes the request and returns it (possibly replaced);
- a response step takes the request/response pair and returns the pair, or a
  :class:`Halt` that skips every remaining response step.

Request steps may register further steps while they run, which is how the
ClickHouse step attaches its response handling only to requests it shaped.
"""

from typing import TYPE_CHECKING, Any, Callable, Optional, Union

import httpx
import msgspec

from chquery._serialization import decode_json
from chquery.exceptions import SerializationError
from chquery.parameters import encode_query
from chquery.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger(__name__)

__all__ = (
    "Halt",
    "QueryRequest",
    "QueryResponse",
    "RequestStep",
    "ResponseStep",
    "decode_body_step",
    "run_request_steps",
    "run_response_steps",
    "send",
)


class QueryRequest:
    """Mutable request flowing through the pipeline.

    ``options`` holds caller-facing options (``sql``, ``format``, ``database``...).
    ``private`` holds metadata steps record for later steps, such as the resolved format.
    """

    __slots__ = (
        "body",
        "headers",
        "method",
        "options",
        "private",
        "query_string",
        "request_steps",
        "response_steps",
        "url",
    )

    def __init__(
        self,
        method: str = "POST",
        url: str = "",
        *,
        query_string: str = "",
        headers: "Optional[Union[httpx.Headers, dict[str, str]]]" = None,
        body: "Optional[Union[str, bytes]]" = None,
        options: "Optional[dict[str, Any]]" = None,
        private: "Optional[dict[str, Any]]" = None,
        request_steps: "Optional[list[tuple[str, RequestStep]]]" = None,
        response_steps: "Optional[list[tuple[str, ResponseStep]]]" = None,
    ) -> None:
        self.method = method.upper()
        self.url = url
        self.query_string = query_string
        self.headers = httpx.Headers(headers)
        self.body = body
        self.options = options if options is not None else {}
        self.private = private if private is not None else {}
        self.request_steps = request_steps if request_steps is not None else []
        self.response_steps = response_steps if response_steps is not None else []

    def __repr__(self) -> str:
        return f"QueryRequest(method={self.method!r}, url={self.url!r}, query_string={self.query_string!r})"

    def copy(self) -> "QueryRequest":
        """Return an independent copy, so a template request can serve many queries."""
        return QueryRequest(
            self.method,
            self.url,
            query_string=self.query_string,
            headers=httpx.Headers(self.headers),
            body=self.body,
            options=dict(self.options),
            private=dict(self.private),
            request_steps=list(self.request_steps),
            response_steps=list(self.response_steps),
        )

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)

    def get_private(self, key: str, default: Any = None) -> Any:
        return self.private.get(key, default)

    def put_private(self, key: str, value: Any) -> "QueryRequest":
        self.private[key] = value
        return self

    def put_header(self, name: str, value: str) -> "QueryRequest":
        """Set a header, replacing every existing value for it."""
        self.headers[name] = value
        return self

    def put_params(self, pairs: "Iterable[tuple[str, str]]", **kwargs: Any) -> "QueryRequest":
        """Percent-encode pairs and append them to the query string.

        Args:
            pairs: Query-string pairs.
            **kwargs: Passed to :func:`~chquery.parameters.encode_query`.

        Returns:
            The request.
        """
        self.query_string = encode_query(pairs, self.query_string, **kwargs)
        return self

    def append_request_step(self, name: str, step: "RequestStep") -> "QueryRequest":
        self.request_steps.append((name, step))
        return self

    def prepend_request_step(self, name: str, step: "RequestStep") -> "QueryRequest":
        self.request_steps.insert(0, (name, step))
        return self

    def append_response_step(self, name: str, step: "ResponseStep") -> "QueryRequest":
        self.response_steps.append((name, step))
        return self

    def prepend_response_step(self, name: str, step: "ResponseStep") -> "QueryRequest":
        self.response_steps.insert(0, (name, step))
        return self

    def build_url(self) -> httpx.URL:
        """Combine the base URL with the accumulated query string.

        A query string already present on the base URL is kept in front.
        """
        url = httpx.URL(self.url)
        query = "&".join(part for part in (url.query.decode("ascii"), self.query_string) if part)
        if not query:
            return url
        return url.copy_with(query=query.encode("ascii"))


class QueryResponse:
    """Response returned by the server, with a body the response steps may replace."""

    __slots__ = ("body", "encoding", "headers", "status")

    def __init__(
        self,
        status: int,
        headers: "Optional[Union[httpx.Headers, dict[str, str]]]" = None,
        body: Any = b"",
        encoding: "Optional[str]" = None,
    ) -> None:
        self.status = status
        self.headers = httpx.Headers(headers)
        self.body = body
        self.encoding = encoding

    def __repr__(self) -> str:
        return f"QueryResponse(status={self.status!r}, body={type(self.body).__name__})"

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        """The body as text, decoding raw bytes if no step decoded them.

        Raises:
            SerializationError: The body is not valid in its declared charset.
        """
        if isinstance(self.body, str):
            return self.body
        if isinstance(self.body, (bytes, bytearray)):
            try:
                return bytes(self.body).decode(self.encoding or "utf-8")
            except (UnicodeDecodeError, LookupError) as exc:
                msg = f"Response body is not valid {self.encoding or 'utf-8'} text."
                raise SerializationError(msg) from exc
        return str(self.body)


class Halt:
    """Returned by a response step to skip the remaining response steps."""

    __slots__ = ("request", "response")

    def __init__(self, request: QueryRequest, response: QueryResponse) -> None:
        self.request = request
        self.response = response


RequestStep = Callable[[QueryRequest], QueryRequest]
ResponseStep = Callable[[QueryRequest, QueryResponse], "Union[tuple[QueryRequest, QueryResponse], Halt]"]


def run_request_steps(request: QueryRequest) -> QueryRequest:
    """Run the request steps in registration order.

    Steps are consumed as they run, so running a request twice does not shape it twice.
    Steps registered while running are picked up in the same pass.

    Args:
        request: The request to shape.

    Returns:
        The request returned by the last step.
    """
    while request.request_steps:
        _, step = request.request_steps.pop(0)
        request = step(request)
    return request


def run_response_steps(request: QueryRequest, response: QueryResponse) -> QueryResponse:
    """Run the response steps in registration order, stopping at the first :class:`Halt`.

    Args:
        request: The request that produced the response.
        response: The response to post-process.

    Returns:
        The final response.
    """
    for name, step in list(request.response_steps):
        result = step(request, response)
        if isinstance(result, Halt):
            logger.debug("Response pipeline halted by %s", name)
            return result.response
        request, response = result
    return response


def send(http_client: httpx.Client, request: QueryRequest) -> QueryResponse:
    """Perform the HTTP round trip for a shaped request.

    Transport failures are raised as the :class:`httpx.TransportError` httpx produced.
    ``auth`` and ``timeout`` options override the httpx client settings for this request.

    Args:
        http_client: The httpx client to send with.
        request: The request, after its request steps ran.

    Returns:
        The raw response, body still undecoded.
    """
    url = request.build_url()
    logger.debug("Sending %s %s", request.method, request.url)
    http_response = http_client.request(
        request.method,
        url,
        headers=request.headers,
        content=request.body,
        auth=request.get_option("auth", httpx.USE_CLIENT_DEFAULT),
        timeout=request.get_option("timeout", httpx.USE_CLIENT_DEFAULT),
    )
    logger.debug("ClickHouse answered %s", http_response.status_code)
    return QueryResponse(
        status=http_response.status_code,
        headers=http_response.headers,
        body=http_response.content,
        encoding=http_response.charset_encoding,
    )


def decode_body_step(
    request: QueryRequest, response: QueryResponse
) -> "Union[tuple[QueryRequest, QueryResponse], Halt]":
    """Decode raw bodies by content type.

    JSON documents become Python objects, ``text/*`` bodies become :class:`str`
    unless they are not valid in their charset, anything else stays :class:`bytes`.
    Disabled with the ``decode_body=False`` option.

    Raises:
        SerializationError: The server sent a JSON content type with an invalid document.
    """
    if request.get_option("decode_body", True) is False or not isinstance(response.body, bytes):
        return request, response

    content_type = response.headers.get("content-type", "")
    mime_type = content_type.split(";", 1)[0].strip().lower()
    if mime_type == "application/json" and response.body:
        try:
            response.body = decode_json(response.body)
        except msgspec.DecodeError as exc:
            msg = "ClickHouse returned a JSON content type but the body is not valid JSON."
            raise SerializationError(msg) from exc
    elif mime_type.startswith("text/"):
        try:
            response.body = response.body.decode(response.encoding or "utf-8")
        except (UnicodeDecodeError, LookupError):
            logger.debug("Text body is not valid %s, keeping raw bytes", response.encoding or "utf-8")
    return request, response
