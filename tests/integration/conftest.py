"""A fake ClickHouse HTTP endpoint for end-to-end tests.

It understands just enough SQL to serve ``system.numbers`` the way the real
server does: format selection by header or ``FORMAT`` clause, ``param_*``
placeholders, the ``database`` query-string option and ``UNKNOWN_TABLE`` errors.
"""

import io
import re
from collections.abc import Generator
from typing import Any

import httpx
import msgspec
import pytest

from chquery.client import ClickHouseClient, new

_NUMBERS_QUERY = re.compile(
    r"^SELECT number(?P<less_two>, number - 2 as less_two)? FROM (?P<table>[\w.]+)"
    r"(?: WHERE number > \{(?P<param>\w+):UInt8\})? LIMIT (?P<limit>\d+)(?: FORMAT (?P<format>\w+))?$",
    re.IGNORECASE,
)
_CONTENT_TYPES = {
    "TabSeparated": "text/tab-separated-values; charset=UTF-8",
    "CSV": "text/csv; charset=UTF-8; header=absent",
    "JSON": "application/json; charset=UTF-8",
    "Parquet": "application/octet-stream",
}


class FakeClickHouse:
    """Callable handler for :class:`httpx.MockTransport`."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        params = request.url.params
        sql = params.get("query") if request.method == "GET" else request.content.decode()
        match = _NUMBERS_QUERY.match((sql or "").strip())
        if match is None:
            return self._error(400, 62, "Syntax error", "SYNTAX_ERROR")

        table = match["table"]
        if table.lower() not in {"system.numbers", "numbers"} or (
            table.lower() == "numbers" and params.get("database") != "system"
        ):
            return self._error(
                404, 60, f"Unknown table expression identifier '{table}' in scope SELECT", "UNKNOWN_TABLE"
            )

        start = int(params[f"param_{match['param']}"]) + 1 if match["param"] else 0
        rows = [
            (number, number - 2) if match["less_two"] else (number,)
            for number in range(start, start + int(match["limit"]))
        ]
        columns = ["number", "less_two"] if match["less_two"] else ["number"]
        output_format = match["format"] or request.headers.get("x-clickhouse-format", "TabSeparated")
        return httpx.Response(
            200,
            content=self._render(output_format, columns, rows),
            headers={"content-type": _CONTENT_TYPES[output_format], "x-clickhouse-format": output_format},
        )

    @staticmethod
    def _error(status: int, code: int, message: str, name: str) -> httpx.Response:
        text = f"Code: {code}. DB::Exception: {message}. ({name}) (version 24.3.1.1)\n"
        return httpx.Response(
            status, content=text.encode(), headers={"content-type": "text/plain; charset=UTF-8"}
        )

    @staticmethod
    def _render(output_format: str, columns: "list[str]", rows: "list[tuple[int, ...]]") -> bytes:
        if output_format == "TabSeparated":
            return "".join("\t".join(map(str, row)) + "\n" for row in rows).encode()
        if output_format == "CSV":
            return "".join(",".join(map(str, row)) + "\n" for row in rows).encode()
        if output_format == "JSON":
            return msgspec.json.encode({
                "meta": [{"name": "number", "type": "UInt64"}, {"name": "less_two", "type": "Int64"}][: len(columns)],
                "data": [{name: str(value) for name, value in zip(columns, row)} for row in rows],
                "rows": len(rows),
                "rows_before_limit_at_least": len(rows),
            })
        polars = pytest.importorskip("polars")
        buffer = io.BytesIO()
        polars.DataFrame([list(row) for row in rows], schema=columns, orient="row").write_parquet(buffer)
        return buffer.getvalue()


@pytest.fixture
def clickhouse() -> FakeClickHouse:
    return FakeClickHouse()


@pytest.fixture
def client(clickhouse: FakeClickHouse) -> Generator[ClickHouseClient, None, None]:
    with new(transport=httpx.MockTransport(clickhouse)) as client:
        yield client


@pytest.fixture
def make_client(clickhouse: FakeClickHouse) -> Generator[Any, None, None]:
    clients: list[ClickHouseClient] = []

    def factory(**options: Any) -> ClickHouseClient:
        created = new(transport=httpx.MockTransport(clickhouse), **options)
        clients.append(created)
        return created

    yield factory
    for created in clients:
        created.close()

