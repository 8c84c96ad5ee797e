"""Client for querying ClickHouse over HTTP.

By default every query is sent as a ``POST`` with the SQL text as the body
and ``TabSeparated`` output, to ``http://localhost:8123``::

    with chquery.new(database="system") as client:
        client.query_or_raise("SELECT number + 1 FROM numbers LIMIT 3").body
        # '1\\n2\\n3\\n'

Placeholders are bound with named parameters::

    client.query("SELECT number FROM numbers WHERE number > {num:UInt8} LIMIT 3", {"num": 5})

With polars installed, ``format="dataframe"`` returns a :class:`polars.DataFrame`.
"""

from typing import TYPE_CHECKING, Any, Final, Optional

import httpx

from chquery.__metadata__ import __version__
from chquery.config import QUERY_OPTION_KEYS, ClickHouseConfig, check_option_keys
from chquery.exceptions import ImproperConfigurationError, SerializationError
from chquery.pipeline import QueryRequest, decode_body_step, run_request_steps, run_response_steps, send
from chquery.pipeline_steps import build_request
from chquery.result import QueryResult
from chquery.utils.logging import get_logger

if TYPE_CHECKING:
    from types import TracebackType

    from chquery.pipeline import QueryResponse
    from chquery.typing import QueryParameters

__all__ = (
    "REQUEST_TRANSPORT_KEYS",
    "SUPPORTED_METHODS",
    "USER_AGENT",
    "ClickHouseClient",
    "new",
    "query",
    "query_or_raise",
)

logger = get_logger(__name__)

USER_AGENT: Final = f"chquery/{__version__}"
SUPPORTED_METHODS: Final[frozenset[str]] = frozenset({"GET", "POST"})
REQUEST_TRANSPORT_KEYS: Final = ("auth", "timeout")


class ClickHouseClient:
    """Sends queries to one ClickHouse endpoint.

    The client holds configuration and an httpx client only. Each query gets
    its own request object, so one client can serve concurrent callers.
    """

    __slots__ = ("_http_client", "_owns_http_client", "config")

    def __init__(
        self, config: "Optional[ClickHouseConfig]" = None, http_client: "Optional[httpx.Client]" = None
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration. Defaults to a local server with default options.
            http_client: httpx client to send with. The caller keeps ownership when given.
        """
        self.config = config if config is not None else ClickHouseConfig()
        self._owns_http_client = http_client is None
        self._http_client = http_client if http_client is not None else self.config.create_http_client()

    def __repr__(self) -> str:
        return f"ClickHouseClient({self.config!r})"

    def __enter__(self) -> "ClickHouseClient":
        return self

    def __exit__(
        self,
        exc_type: "Optional[type[BaseException]]",
        exc_val: "Optional[BaseException]",
        exc_tb: "Optional[TracebackType]",
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the httpx client if this client created it."""
        if self._owns_http_client:
            self._http_client.close()

    def new_request(self, method: "Optional[str]" = None, **options: Any) -> QueryRequest:
        """Create a request template carrying this client's defaults.

        Args:
            method: ``GET`` or ``POST``. Defaults to the ``method`` query option, then ``POST``.
            **options: Query options overriding the configured ones. ``base_url``, ``headers``,
                ``auth`` and ``timeout`` override the connection settings for this request only.

        Raises:
            ImproperConfigurationError: The method is not supported.

        Returns:
            A request with no SQL yet.
        """
        connection_config = self.config.connection_config
        base_url = options.pop("base_url", connection_config.get("base_url", ""))
        headers = {"user-agent": USER_AGENT, **connection_config.get("headers", {}), **options.pop("headers", {})}
        transport_options = {key: options.pop(key) for key in REQUEST_TRANSPORT_KEYS if key in options}
        check_option_keys(options, QUERY_OPTION_KEYS, "query")
        query_options: dict[str, Any] = {**self.config.query_options, **options, **transport_options}
        method = (method or query_options.pop("method", None) or "POST").upper()
        query_options.pop("method", None)
        if method not in SUPPORTED_METHODS:
            msg = f"Unsupported method {method!r}. Expected one of {sorted(SUPPORTED_METHODS)!r}"
            raise ImproperConfigurationError(msg)

        request = QueryRequest(method, base_url, headers=headers, options=query_options)
        return request.append_response_step("decode_body", decode_body_step)

    def build(self, sql: str, parameters: "Optional[QueryParameters]" = None, **options: Any) -> QueryRequest:
        """Build the request for a query without sending it.

        Raises:
            ValidationError: The SQL text is missing or the format is unknown.
            MissingDependencyError: ``format="dataframe"`` without polars installed.
        """
        method = options.pop("method", None)
        return build_request(self.new_request(method, **options), sql, parameters)

    def run(self, request: QueryRequest) -> "QueryResponse":
        """Send a request and run its response steps.

        Request steps still pending on ``request`` run first.

        Raises:
            httpx.TransportError: The request could not be sent or answered.
            SerializationError: The response body could not be decoded.
        """
        request = run_request_steps(request)
        response = send(self._http_client, request)
        return run_response_steps(request, response)

    def query(self, sql: str, parameters: "Optional[QueryParameters]" = None, **options: Any) -> QueryResult:
        """Run a query, returning failures instead of raising them.

        Invalid input (missing SQL, unknown format, missing optional dependency)
        is still raised, before anything is sent.

        Args:
            sql: SQL text, sent as is.
            parameters: Values for ``{name:Type}`` placeholders.
            **options: Query options for this call (``format``, ``database``, ``method``...).

        Returns:
            The response, or the transport or decoding error.
        """
        request = self.build(sql, parameters, **options)
        try:
            response = self.run(request)
        except (httpx.TransportError, SerializationError) as exc:
            logger.debug("ClickHouse query failed: %s", exc)
            return QueryResult(error=exc)
        return QueryResult(response=response)

    def query_or_raise(
        self, sql: str, parameters: "Optional[QueryParameters]" = None, **options: Any
    ) -> "QueryResponse":
        """Same as :meth:`query`, but raises on failure.

        A non-success status is not a failure: the response is returned with
        the server's error text as body.
        """
        return self.run(self.build(sql, parameters, **options))


def new(config: "Optional[ClickHouseConfig]" = None, **options: Any) -> ClickHouseClient:
    """Build a client.

    Args:
        config: A ready configuration. When omitted, ``options`` are split into
            connection settings and query options.
        **options: Any :class:`~chquery.config.ConnectionConfig` or :class:`~chquery.config.QueryOptions` key.

    Returns:
        The client.
    """
    if config is None:
        config = ClickHouseConfig.from_options(**options)
    elif options:
        msg = "Pass either a config or options, not both."
        raise ImproperConfigurationError(msg)
    return ClickHouseClient(config)


def query(
    client: ClickHouseClient, sql: str, parameters: "Optional[QueryParameters]" = None, **options: Any
) -> QueryResult:
    """Run a query with ``client``. See :meth:`ClickHouseClient.query`."""
    return client.query(sql, parameters, **options)


def query_or_raise(
    client: ClickHouseClient, sql: str, parameters: "Optional[QueryParameters]" = None, **options: Any
) -> "QueryResponse":
    """Run a query with ``client``, raising on failure. See :meth:`ClickHouseClient.query_or_raise`."""
    return client.query_or_raise(sql, parameters, **options)
