from collections.abc import Mapping, Sequence
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Union
from uuid import UUID

from typing_extensions import TypeAlias

from chquery._typing import POLARS_INSTALLED, RICH_CLICK_INSTALLED

if TYPE_CHECKING:
    from polars import DataFrame

    from chquery.formats import FormatAlias


ScalarValue: TypeAlias = Union[str, int, float, bool, Decimal, datetime, date, time, UUID, None]
"""Scalar ClickHouse query parameter values."""

ParameterValue: TypeAlias = Union[
    ScalarValue, "Sequence[ParameterValue]", "tuple[ParameterValue, ...]", "Mapping[Any, ParameterValue]"
]
"""Any value accepted for a ``{name:Type}`` placeholder.

Containers nest arbitrarily: arrays, tuples and maps of other parameter values.
"""

QueryParameters: TypeAlias = "Union[Mapping[str, ParameterValue], Sequence[tuple[str, ParameterValue]]]"
"""Named query parameters, either a mapping or ordered ``(name, value)`` pairs."""

FormatOption: TypeAlias = "Union[str, FormatAlias]"
"""A canonical ClickHouse format name, a convenience alias, or the dataframe sentinel."""

ResponseBody: TypeAlias = "Union[bytes, str, dict[str, Any], list[Any], DataFrame]"
"""Body of a response after the response steps ran."""


__all__ = (
    "POLARS_INSTALLED",
    "RICH_CLICK_INSTALLED",
    "FormatOption",
    "ParameterValue",
    "QueryParameters",
    "ResponseBody",
    "ScalarValue",
)
