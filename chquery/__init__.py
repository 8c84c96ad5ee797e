"""chquery: query ClickHouse over its HTTP interface."""

from chquery import exceptions, formats, parameters, pipeline, typing, utils
from chquery.__metadata__ import __version__
from chquery.client import ClickHouseClient, new, query, query_or_raise
from chquery.config import ClickHouseConfig, ConnectionConfig, QueryOptions
from chquery.exceptions import (
    CHQueryError,
    ImproperConfigurationError,
    MissingDependencyError,
    MissingSQLError,
    ParameterError,
    SerializationError,
    ServerError,
    UnknownFormatError,
    ValidationError,
)
from chquery.formats import FormatAlias, resolve_format
from chquery.parameters import encode_parameter_value, prepare_parameters
from chquery.pipeline import Halt, QueryRequest, QueryResponse
from chquery.pipeline_steps import build_request
from chquery.result import QueryResult

__all__ = (
    "CHQueryError",
    "ClickHouseClient",
    "ClickHouseConfig",
    "ConnectionConfig",
    "FormatAlias",
    "Halt",
    "ImproperConfigurationError",
    "MissingDependencyError",
    "MissingSQLError",
    "ParameterError",
    "QueryOptions",
    "QueryRequest",
    "QueryResponse",
    "QueryResult",
    "SerializationError",
    "ServerError",
    "UnknownFormatError",
    "ValidationError",
    "__version__",
    "build_request",
    "encode_parameter_value",
    "exceptions",
    "formats",
    "new",
    "parameters",
    "pipeline",
    "prepare_parameters",
    "query",
    "query_or_raise",
    "resolve_format",
    "typing",
    "utils",
)
