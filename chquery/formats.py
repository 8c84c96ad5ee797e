"""ClickHouse output formats.

Format names are sent verbatim in the ``x-clickhouse-format`` header, so they
are matched case-sensitively against the server's own list. A handful of
lowercase aliases exist for convenience, plus the ``dataframe`` sentinel that
asks for a Parquet response decoded into a :class:`polars.DataFrame`.
"""

from enum import Enum
from typing import Any, Final

from chquery.exceptions import UnknownFormatError
from chquery.utils.module_loader import ensure_polars

__all__ = (
    "DATAFRAME_FORMAT",
    "DEFAULT_FORMAT",
    "FORMATS_PAGE",
    "FORMAT_ALIASES",
    "PARQUET_FORMAT",
    "SUPPORTED_FORMATS",
    "FormatAlias",
    "format_header",
    "resolve_format",
)

FORMATS_PAGE: Final = "https://clickhouse.com/docs/en/interfaces/formats"
PARQUET_FORMAT: Final = "Parquet"
DATAFRAME_FORMAT: Final = "dataframe"
DEFAULT_FORMAT: Final = "tsv"

SUPPORTED_FORMATS: Final[frozenset[str]] = frozenset(
    (
        "TabSeparated",
        "TabSeparatedRaw",
        "TabSeparatedWithNames",
        "TabSeparatedWithNamesAndTypes",
        "TabSeparatedRawWithNames",
        "TabSeparatedRawWithNamesAndTypes",
        "Template",
        "TemplateIgnoreSpaces",
        "CSV",
        "CSVWithNames",
        "CSVWithNamesAndTypes",
        "CustomSeparated",
        "CustomSeparatedWithNames",
        "CustomSeparatedWithNamesAndTypes",
        "SQLInsert",
        "Values",
        "Vertical",
        "JSON",
        "JSONAsString",
        "JSONAsObject",
        "JSONStrings",
        "JSONColumns",
        "JSONColumnsWithMetadata",
        "JSONCompact",
        "JSONCompactStrings",
        "JSONCompactColumns",
        "JSONEachRow",
        "PrettyJSONEachRow",
        "JSONEachRowWithProgress",
        "JSONStringsEachRow",
        "JSONStringsEachRowWithProgress",
        "JSONCompactEachRow",
        "JSONCompactEachRowWithNames",
        "JSONCompactEachRowWithNamesAndTypes",
        "JSONCompactStringsEachRow",
        "JSONCompactStringsEachRowWithNames",
        "JSONCompactStringsEachRowWithNamesAndTypes",
        "JSONObjectEachRow",
        "BSONEachRow",
        "TSKV",
        "Pretty",
        "PrettyNoEscapes",
        "PrettyMonoBlock",
        "PrettyNoEscapesMonoBlock",
        "PrettyCompact",
        "PrettyCompactNoEscapes",
        "PrettyCompactMonoBlock",
        "PrettyCompactNoEscapesMonoBlock",
        "PrettySpace",
        "PrettySpaceNoEscapes",
        "PrettySpaceMonoBlock",
        "PrettySpaceNoEscapesMonoBlock",
        "Prometheus",
        "Protobuf",
        "ProtobufSingle",
        "ProtobufList",
        "Avro",
        "AvroConfluent",
        "Parquet",
        "ParquetMetadata",
        "Arrow",
        "ArrowStream",
        "ORC",
        "One",
        "Npy",
        "RowBinary",
        "RowBinaryWithNames",
        "RowBinaryWithNamesAndTypes",
        "RowBinaryWithDefaults",
        "Native",
        "Null",
        "XML",
        "CapnProto",
        "LineAsString",
        "Regexp",
        "RawBLOB",
        "MsgPack",
        "MySQLDump",
        "DWARF",
        "Markdown",
        "Form",
    )
)


class FormatAlias(str, Enum):
    """Convenience names accepted for the ``format`` option."""

    TSV = "tsv"
    CSV = "csv"
    JSON = "json"
    DATAFRAME = DATAFRAME_FORMAT

    def __str__(self) -> str:
        return self.value


FORMAT_ALIASES: Final[dict[str, str]] = {
    FormatAlias.TSV.value: "TabSeparated",
    FormatAlias.CSV.value: "CSV",
    FormatAlias.JSON.value: "JSON",
}


def resolve_format(value: Any) -> str:
    """Resolve a ``format`` option into what is sent to ClickHouse.

    Args:
        value: A canonical ClickHouse format name, a :class:`FormatAlias` or its string value.

    Raises:
        MissingDependencyError: ``dataframe`` was requested but polars is not installed.
        UnknownFormatError: The value is neither a known format nor an alias.

    Returns:
        The canonical format name, or :data:`DATAFRAME_FORMAT`.
    """
    if isinstance(value, FormatAlias):
        value = value.value
    if not isinstance(value, str):
        raise UnknownFormatError(value, tuple(alias.value for alias in FormatAlias), FORMATS_PAGE)

    if value in FORMAT_ALIASES:
        return FORMAT_ALIASES[value]
    if value == DATAFRAME_FORMAT:
        ensure_polars()
        return DATAFRAME_FORMAT
    if value in SUPPORTED_FORMATS:
        return value
    raise UnknownFormatError(value, tuple(alias.value for alias in FormatAlias), FORMATS_PAGE)


def format_header(resolved: str) -> str:
    """Return the ``x-clickhouse-format`` header value for a resolved format."""
    if resolved == DATAFRAME_FORMAT:
        return PARQUET_FORMAT
    return resolved
