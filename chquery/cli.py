import sys
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from rich_click import Group

__all__ = ("get_chquery_group", "parse_parameters")


def parse_parameters(values: "tuple[str, ...]") -> "dict[str, str]":
    """Parse ``name=value`` command line parameters.

    Raises:
        ValidationError: A value has no ``=`` or an empty name.
    """
    from chquery.exceptions import ValidationError

    parameters: dict[str, str] = {}
    for value in values:
        name, separator, text = value.partition("=")
        if not separator or not name:
            msg = f"Invalid parameter {value!r}, expected name=value"
            raise ValidationError(msg)
        parameters[name] = text
    return parameters


def get_chquery_group() -> "Group":
    """Get the chquery CLI group.

    Raises:
        MissingDependencyError: If the `rich-click` package is not installed.

    Returns:
        The chquery CLI group.
    """
    from chquery.exceptions import MissingDependencyError
    from chquery.typing import RICH_CLICK_INSTALLED

    if not RICH_CLICK_INSTALLED:
        raise MissingDependencyError(package="rich_click", install_package="cli")

    import rich_click as click

    @click.group(name="chquery")
    @click.option("--url", envvar="CLICKHOUSE_URL", help="ClickHouse HTTP endpoint", type=str, default=None)
    @click.option("--user", envvar="CLICKHOUSE_USER", help="User for basic authentication", type=str, default=None)
    @click.option("--password", envvar="CLICKHOUSE_PASSWORD", help="Password for basic authentication", default="")
    @click.option("--verbose", is_flag=True, default=False, help="Log requests and responses")
    @click.pass_context
    def chquery_group(
        ctx: "click.Context", url: Optional[str], user: Optional[str], password: str, verbose: bool
    ) -> None:
        """Query ClickHouse over HTTP."""
        from chquery.utils.logging import configure_logging

        ctx.ensure_object(dict)
        connection_config: dict[str, Any] = {}
        if url:
            connection_config["base_url"] = url
        if user:
            connection_config["auth"] = (user, password)
        ctx.obj["connection_config"] = connection_config
        if verbose:
            configure_logging(level="DEBUG", format_style="simple")

    @chquery_group.command(name="query", help="Run a query and print the response body.")
    @click.argument("sql")
    @click.option("--database", "-d", envvar="CLICKHOUSE_DATABASE", default=None, help="Database to query")
    @click.option("--format", "-f", "output_format", default="tsv", help="Output format or alias")
    @click.option("--param", "-p", "params", multiple=True, help="Query parameter as name=value")
    @click.option("--get", "use_get", is_flag=True, default=False, help="Send the query with GET (read-only)")
    @click.pass_context
    def query_command(
        ctx: "click.Context",
        sql: str,
        database: Optional[str],
        output_format: str,
        params: "tuple[str, ...]",
        use_get: bool,
    ) -> None:
        from rich import get_console
        from rich.markup import escape

        from chquery.config import ClickHouseConfig
        from chquery.exceptions import CHQueryError, TransportError

        console = get_console()
        query_options: dict[str, Any] = {"format": output_format, "method": "GET" if use_get else "POST"}
        if database:
            query_options["database"] = database

        try:
            config = ClickHouseConfig(connection_config=ctx.obj["connection_config"], query_options=query_options)
            with config.provide_client() as client:
                response = client.query(sql, parse_parameters(params)).unwrap()
        except CHQueryError as e:
            console.print(f"[red]{escape(str(e))}[/]")
            ctx.exit(1)
        except TransportError as e:
            console.print(f"[red]Could not reach ClickHouse: {escape(str(e))}[/]")
            ctx.exit(1)

        _print_body(console, response.body)
        if not response.is_success:
            ctx.exit(1)

    return chquery_group


def _print_body(console: Any, body: Any) -> None:
    if isinstance(body, bytes):
        sys.stdout.buffer.write(body)
        sys.stdout.flush()
    elif isinstance(body, str):
        console.out(body, end="", highlight=False)
    elif isinstance(body, (dict, list)):
        console.print_json(data=body)
    else:
        console.print(body)
