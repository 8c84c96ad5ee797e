"""ClickHouse request shaping and response interpretation steps."""

import io
from typing import TYPE_CHECKING, Any, Final, Union
from urllib.parse import parse_qsl, quote_plus

from chquery.exceptions import MissingSQLError, SerializationError
from chquery.formats import DATAFRAME_FORMAT, DEFAULT_FORMAT, PARQUET_FORMAT, format_header, resolve_format
from chquery.parameters import prepare_parameters
from chquery.pipeline import Halt, run_request_steps
from chquery.utils.logging import get_logger
from chquery.utils.module_loader import import_polars

if TYPE_CHECKING:
    from polars import DataFrame

    from chquery.pipeline import QueryRequest, QueryResponse
    from chquery.typing import QueryParameters

logger = get_logger(__name__)

__all__ = (
    "CLICKHOUSE_FORMAT_KEY",
    "DEFAULT_BASE_URL",
    "FORMAT_HEADER",
    "build_request",
    "clickhouse_request_step",
    "clickhouse_result_step",
    "load_parquet",
)

DEFAULT_BASE_URL: Final = "http://localhost:8123"
FORMAT_HEADER: Final = "x-clickhouse-format"
CLICKHOUSE_FORMAT_KEY: Final = "clickhouse_format"


def clickhouse_request_step(request: "QueryRequest") -> "QueryRequest":
    """Shape a request for the ClickHouse HTTP interface.

    The resolved format is recorded under the ``clickhouse_format`` private key and
    doubles as the guard: a request that already carries it is returned untouched.
    Nothing is modified when validation fails.

    Raises:
        UnknownFormatError: The ``format`` option is not a known format or alias.
        MissingDependencyError: ``format="dataframe"`` without polars installed.
        ParameterError: A parameter name is empty or repeated.
        MissingSQLError: Neither the ``sql`` option nor the request carries SQL text.
    """
    if CLICKHOUSE_FORMAT_KEY in request.private:
        return request

    resolved = resolve_format(request.get_option("format", DEFAULT_FORMAT))
    parameter_pairs = prepare_parameters(request.get_option("parameters") or ())
    _put_sql(request)

    if not request.url:
        request.url = DEFAULT_BASE_URL
    request.put_private(CLICKHOUSE_FORMAT_KEY, resolved)
    request.put_header(FORMAT_HEADER, format_header(resolved))

    if parameter_pairs:
        request.put_params(parameter_pairs)

    database = request.get_option("database")
    if database:
        request.put_params([("database", database)])

    request.prepend_response_step("clickhouse_result", clickhouse_result_step)
    logger.debug("Prepared ClickHouse %s request", request.method, extra={"extra_fields": {"format": resolved}})
    return request


def _put_sql(request: "QueryRequest") -> None:
    sql = request.get_option("sql")
    if sql is None:
        if request.body is None and not any(key == "query" for key, _ in parse_qsl(request.query_string)):
            raise MissingSQLError()
        return
    if request.method == "GET":
        request.body = None
        request.put_params([("query", sql)], quote_via=quote_plus)
    else:
        request.body = sql


def build_request(
    request: "QueryRequest", sql: str, parameters: "Union[QueryParameters, None]" = None, **options: Any
) -> "QueryRequest":
    """Build the outgoing request for one query.

    The template request is copied, so it can be reused for any number of queries.
    All validation happens here, before anything is sent.

    Args:
        request: Template request, usually from :meth:`~chquery.client.ClickHouseClient.new_request`.
        sql: SQL text, sent as is.
        parameters: Values for ``{name:Type}`` placeholders in ``sql``.
        **options: ``format``, ``database`` and ``decode_body`` options for this query.

    Raises:
        MissingSQLError: ``sql`` is empty.

    Returns:
        The shaped request, ready to send.
    """
    if not isinstance(sql, str) or not sql.strip():
        raise MissingSQLError()

    request = request.copy()
    request.options.update(options)
    request.options["sql"] = sql
    if parameters is not None:
        request.options["parameters"] = parameters
    request.prepend_request_step("clickhouse_run", clickhouse_request_step)
    return run_request_steps(request)


def clickhouse_result_step(
    request: "QueryRequest", response: "QueryResponse"
) -> "Union[tuple[QueryRequest, QueryResponse], Halt]":
    """Decode Parquet responses into a dataframe when one was asked for.

    A ``FORMAT`` clause in the SQL text wins over the format header, so the
    echoed ``x-clickhouse-format`` header decides, not the request.
    """
    if not response.is_success or request.get_private(CLICKHOUSE_FORMAT_KEY) != DATAFRAME_FORMAT:
        return request, response

    answered_format = response.headers.get(FORMAT_HEADER)
    if answered_format != PARQUET_FORMAT:
        logger.debug("Dataframe requested but ClickHouse answered in %s, keeping the raw body", answered_format)
        return request, response

    response.body = load_parquet(response.body)
    logger.debug("Decoded Parquet response into a dataframe", extra={"extra_fields": {"shape": response.body.shape}})
    return Halt(request, response)


def load_parquet(body: bytes) -> "DataFrame":
    """Load a Parquet document into a polars dataframe.

    Raises:
        MissingDependencyError: polars is not installed.
        SerializationError: The body is not a readable Parquet document.
    """
    polars = import_polars()
    try:
        return polars.read_parquet(io.BytesIO(body))
    except Exception as exc:
        msg = "Could not decode the Parquet response into a dataframe."
        raise SerializationError(msg) from exc
