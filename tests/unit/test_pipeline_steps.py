"""Tests for ClickHouse request shaping and response interpretation."""

import io

import pytest

from chquery.exceptions import MissingDependencyError, MissingSQLError, SerializationError, UnknownFormatError
from chquery.pipeline import Halt, QueryRequest, QueryResponse
from chquery.pipeline_steps import (
    CLICKHOUSE_FORMAT_KEY,
    DEFAULT_BASE_URL,
    FORMAT_HEADER,
    build_request,
    clickhouse_request_step,
    clickhouse_result_step,
    load_parquet,
)


def _parquet_bytes() -> bytes:
    polars = pytest.importorskip("polars")
    buffer = io.BytesIO()
    polars.DataFrame({"number": [0, 1, 2]}).write_parquet(buffer)
    return buffer.getvalue()


def test_get_places_sql_in_query_string() -> None:
    request = build_request(QueryRequest("GET"), "SELECT 1")

    assert request.query_string == "query=SELECT+1"
    assert request.body is None


def test_post_places_sql_in_body() -> None:
    request = build_request(QueryRequest("POST"), "SELECT 1")

    assert request.body == "SELECT 1"
    assert request.query_string == ""


def test_defaults() -> None:
    request = build_request(QueryRequest(), "SELECT 1")

    assert request.url == DEFAULT_BASE_URL
    assert request.headers[FORMAT_HEADER] == "TabSeparated"
    assert request.private[CLICKHOUSE_FORMAT_KEY] == "TabSeparated"


def test_configured_url_is_kept() -> None:
    request = build_request(QueryRequest(url="http://clickhouse:8123"), "SELECT 1")

    assert request.url == "http://clickhouse:8123"


@pytest.mark.parametrize(("option", "header"), [("csv", "CSV"), ("json", "JSON"), ("JSONEachRow", "JSONEachRow")])
def test_format_header(option: str, header: str) -> None:
    request = build_request(QueryRequest(), "SELECT 1", format=option)

    assert request.headers[FORMAT_HEADER] == header


def test_dataframe_requests_parquet() -> None:
    pytest.importorskip("polars")

    request = build_request(QueryRequest(), "SELECT 1", format="dataframe")

    assert request.headers[FORMAT_HEADER] == "Parquet"
    assert request.private[CLICKHOUSE_FORMAT_KEY] == "dataframe"


def test_parameters_and_database_are_appended() -> None:
    request = build_request(
        QueryRequest("GET"),
        "SELECT {s:String}, {ids:Array(UInt8)}",
        {"s": "a b", "ids": [1, 2]},
        database="system",
    )

    assert request.query_string == (
        "query=SELECT+%7Bs%3AString%7D%2C+%7Bids%3AArray%28UInt8%29%7D"
        "&param_s=a%20b&param_ids=%5B1%2C2%5D&database=system"
    )


def test_parameters_with_post() -> None:
    request = build_request(QueryRequest("POST"), "SELECT {num:UInt8}", {"num": 5})

    assert request.body == "SELECT {num:UInt8}"
    assert request.query_string == "param_num=5"


def test_database_only() -> None:
    request = build_request(QueryRequest(), "SHOW TABLES", database="system")

    assert request.query_string == "database=system"


def test_response_step_is_prepended() -> None:
    def existing(request: QueryRequest, response: QueryResponse) -> "tuple[QueryRequest, QueryResponse]":
        return request, response

    template = QueryRequest().append_response_step("existing", existing)

    request = build_request(template, "SELECT 1")

    assert [name for name, _ in request.response_steps] == ["clickhouse_result", "existing"]


def test_template_is_not_mutated() -> None:
    template = QueryRequest("GET", options={"format": "csv"})

    build_request(template, "SELECT 1", {"a": 1}, database="system")

    assert template.query_string == ""
    assert template.options == {"format": "csv"}
    assert template.private == {}
    assert FORMAT_HEADER not in template.headers
    assert template.response_steps == []


def test_request_step_is_idempotent() -> None:
    request = build_request(QueryRequest("GET"), "SELECT 1", {"a": 1}, database="system")
    query_string = request.query_string

    request = clickhouse_request_step(request)

    assert request.query_string == query_string
    assert [name for name, _ in request.response_steps] == ["clickhouse_result"]


@pytest.mark.parametrize("sql", ["", "   ", None])
def test_missing_sql(sql: object) -> None:
    with pytest.raises(MissingSQLError):
        build_request(QueryRequest(), sql)  # type: ignore[arg-type]


def test_request_step_without_sql() -> None:
    with pytest.raises(MissingSQLError):
        clickhouse_request_step(QueryRequest())


def test_request_step_accepts_sql_already_on_the_request() -> None:
    request = clickhouse_request_step(QueryRequest(body="SELECT 1"))
    assert request.body == "SELECT 1"

    request = clickhouse_request_step(QueryRequest("GET", query_string="query=SELECT+1"))
    assert request.query_string == "query=SELECT+1"


def test_param_named_query_does_not_count_as_sql() -> None:
    with pytest.raises(MissingSQLError):
        clickhouse_request_step(QueryRequest("GET", query_string="param_query=1"))


def test_unknown_format_leaves_request_untouched() -> None:
    request = QueryRequest(options={"format": "bogus", "sql": "SELECT 1"})

    with pytest.raises(UnknownFormatError):
        clickhouse_request_step(request)

    assert request.url == ""
    assert request.body is None
    assert request.private == {}
    assert FORMAT_HEADER not in request.headers


def test_dataframe_without_polars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("chquery.typing.POLARS_INSTALLED", False)

    with pytest.raises(MissingDependencyError):
        build_request(QueryRequest(), "SELECT 1", format="dataframe")


def test_parquet_response_becomes_a_dataframe() -> None:
    polars = pytest.importorskip("polars")
    request = QueryRequest(private={CLICKHOUSE_FORMAT_KEY: "dataframe"})
    response = QueryResponse(200, {FORMAT_HEADER: "Parquet"}, _parquet_bytes())

    result = clickhouse_result_step(request, response)

    assert isinstance(result, Halt)
    assert isinstance(result.response.body, polars.DataFrame)
    assert result.response.body["number"].to_list() == [0, 1, 2]


def test_other_echoed_format_is_left_alone() -> None:
    request = QueryRequest(private={CLICKHOUSE_FORMAT_KEY: "dataframe"})
    response = QueryResponse(200, {FORMAT_HEADER: "JSON"}, b'{"data": []}')

    result = clickhouse_result_step(request, response)

    assert result == (request, response)
    assert response.body == b'{"data": []}'


def test_error_responses_are_never_decoded() -> None:
    request = QueryRequest(private={CLICKHOUSE_FORMAT_KEY: "dataframe"})
    response = QueryResponse(500, {FORMAT_HEADER: "Parquet"}, b"Code: 60. DB::Exception: Unknown table")

    result = clickhouse_result_step(request, response)

    assert result == (request, response)
    assert response.body == b"Code: 60. DB::Exception: Unknown table"


def test_parquet_is_only_decoded_when_requested() -> None:
    request = QueryRequest(private={CLICKHOUSE_FORMAT_KEY: "Parquet"})
    response = QueryResponse(200, {FORMAT_HEADER: "Parquet"}, b"PAR1")

    assert clickhouse_result_step(request, response) == (request, response)
    assert response.body == b"PAR1"


def test_missing_polars_at_decode_time(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("chquery.typing.POLARS_INSTALLED", False)
    request = QueryRequest(private={CLICKHOUSE_FORMAT_KEY: "dataframe"})
    response = QueryResponse(200, {FORMAT_HEADER: "Parquet"}, b"PAR1")

    with pytest.raises(MissingDependencyError):
        clickhouse_result_step(request, response)


def test_malformed_parquet() -> None:
    pytest.importorskip("polars")

    with pytest.raises(SerializationError) as exc_info:
        load_parquet(b"definitely not parquet")

    assert exc_info.value.__cause__ is not None
