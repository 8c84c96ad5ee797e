"""Encoding of named query parameters for the ClickHouse HTTP interface.

SQL placeholders such as ``{num:UInt8}`` are bound out of band: every
parameter travels as a ``param_<name>`` query-string pair whose value is the
text ClickHouse parses for the placeholder type. Values inside arrays, tuples
and maps follow literal syntax, so strings and dates are quoted there while
top-level values are sent bare.
"""

from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, time, timezone
from decimal import Decimal
from functools import singledispatch
from typing import TYPE_CHECKING, Any, Callable, Final
from urllib.parse import quote, urlencode
from uuid import UUID

from chquery.exceptions import ParameterError

if TYPE_CHECKING:
    from chquery.typing import QueryParameters

__all__ = (
    "PARAMETER_PREFIX",
    "encode_nested_value",
    "encode_parameter_value",
    "encode_query",
    "escape_text",
    "prepare_parameters",
)

PARAMETER_PREFIX: Final = "param_"
_ESCAPES: Final = (("\\", "\\\\"), ("\t", "\\t"), ("\n", "\\n"))
_UNIX_EPOCH: Final = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECONDS_PER_SECOND: Final = 1_000_000


def escape_text(text: str) -> str:
    """Escape backslash, tab and newline as two-character sequences."""
    for pattern, replacement in _ESCAPES:
        text = text.replace(pattern, replacement)
    return text


def _quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def _encode_unix_timestamp(value: datetime) -> str:
    """Render an aware datetime as Unix epoch seconds.

    Whole seconds are rendered as an integer, anything else with exactly six decimals.
    """
    microseconds = (value.astimezone(timezone.utc) - _UNIX_EPOCH) // datetime.resolution
    if microseconds % _MICROSECONDS_PER_SECOND == 0:
        return str(microseconds // _MICROSECONDS_PER_SECOND)
    return f"{Decimal(microseconds).scaleb(-6):.6f}"


def _join(values: "Iterable[Any]", opening: str, closing: str) -> str:
    return opening + ",".join(encode_nested_value(value) for value in values) + closing


@singledispatch
def encode_parameter_value(value: Any) -> str:
    """Encode a top-level parameter value.

    Args:
        value: The parameter value.

    Returns:
        The text sent as the ``param_<name>`` value.
    """
    if isinstance(value, Mapping):
        return _encode_mapping(value)
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return _join(value, "[", "]")
    return str(value)


@encode_parameter_value.register
def _(value: str) -> str:
    return escape_text(value)


@encode_parameter_value.register
def _(value: bool) -> str:
    return "true" if value else "false"


@encode_parameter_value.register(type(None))
def _(value: None) -> str:
    return "\\N"


@encode_parameter_value.register
def _(value: datetime) -> str:
    if value.tzinfo is None:
        return value.isoformat(sep=" ")
    return _encode_unix_timestamp(value)


@encode_parameter_value.register
def _(value: list) -> str:  # type: ignore[type-arg]
    return _join(value, "[", "]")


@encode_parameter_value.register
def _(value: tuple) -> str:  # type: ignore[type-arg]
    return _join(value, "(", ")")


@encode_parameter_value.register
def _(value: dict) -> str:  # type: ignore[type-arg]
    return _encode_mapping(value)


def _encode_mapping(value: "Mapping[Any, Any]") -> str:
    entries = (f"{encode_nested_value(key)}:{encode_nested_value(item)}" for key, item in value.items())
    return "{" + ",".join(entries) + "}"


@singledispatch
def encode_nested_value(value: Any) -> str:
    """Encode a value that is an element of an array, tuple or map.

    Args:
        value: The element value.

    Returns:
        The element rendered as a ClickHouse literal.
    """
    return encode_parameter_value(value)


@encode_nested_value.register
def _(value: str) -> str:
    return _quote(escape_text(value))


@encode_nested_value.register(date)
@encode_nested_value.register(time)
@encode_nested_value.register(UUID)
def _(value: "date | time | UUID") -> str:
    return _quote(str(value))


@encode_nested_value.register
def _(value: datetime) -> str:
    if value.tzinfo is None:
        return _quote(value.isoformat(sep=" "))
    return _encode_unix_timestamp(value)


@encode_nested_value.register(type(None))
def _(value: None) -> str:
    return "NULL"


def prepare_parameters(parameters: "QueryParameters") -> "list[tuple[str, str]]":
    """Turn named parameters into ``param_<name>`` query-string pairs.

    Args:
        parameters: A mapping or a sequence of ``(name, value)`` pairs. Order is preserved.

    Raises:
        ParameterError: A parameter name is empty or given twice.

    Returns:
        The encoded pairs, still to be percent-encoded.
    """
    items = parameters.items() if isinstance(parameters, Mapping) else parameters
    seen: set[str] = set()
    prepared: list[tuple[str, str]] = []
    for name, value in items:
        key = str(name)
        if not key:
            msg = "Query parameter names must not be empty."
            raise ParameterError(msg)
        if key in seen:
            msg = f"Query parameter {key!r} was given more than once."
            raise ParameterError(msg)
        seen.add(key)
        prepared.append((f"{PARAMETER_PREFIX}{key}", encode_parameter_value(value)))
    return prepared


def encode_query(
    pairs: "Iterable[tuple[str, str]]", existing: "str | None" = None, *, quote_via: "Callable[..., str]" = quote
) -> str:
    """Percent-encode pairs and append them to an existing query string.

    Args:
        pairs: Query-string pairs.
        existing: Query string already present on the request, kept as is.
        quote_via: Quoting function. The default follows RFC 3986 (spaces become ``%20``).

    Returns:
        The combined query string.
    """
    encoded = urlencode(list(pairs), quote_via=quote_via)
    if not existing:
        return encoded
    if not encoded:
        return existing
    return f"{existing}&{encoded}"
