"""ClickHouse client configuration."""

import os
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Final, Literal, Optional, TypedDict, Union

import httpx
from typing_extensions import NotRequired

from chquery.exceptions import ImproperConfigurationError
from chquery.utils.logging import get_logger

if TYPE_CHECKING:
    from chquery.client import ClickHouseClient
    from chquery.typing import FormatOption

__all__ = (
    "CONNECTION_CONFIG_KEYS",
    "DEFAULT_TIMEOUT",
    "QUERY_OPTION_KEYS",
    "ClickHouseConfig",
    "ConnectionConfig",
    "QueryOptions",
    "check_option_keys",
)

logger = get_logger("config")

DEFAULT_TIMEOUT: Final = 300.0


class ConnectionConfig(TypedDict, total=False):
    """Transport settings, handed to httpx without interpretation."""

    base_url: NotRequired[str]
    """Server endpoint. Defaults to ``http://localhost:8123``."""
    auth: NotRequired[Union[httpx.Auth, "tuple[str, str]"]]
    """Any authentication httpx supports, e.g. ``("user", "password")`` for basic auth."""
    headers: NotRequired["dict[str, str]"]
    """Extra headers sent with every query."""
    timeout: NotRequired[float]
    """Timeout in seconds. Defaults to 300."""
    verify: NotRequired[bool]
    """Verify TLS certificates."""
    transport: NotRequired[httpx.BaseTransport]
    """Custom httpx transport."""


class QueryOptions(TypedDict, total=False):
    """Defaults applied to every query made with a client."""

    format: NotRequired["FormatOption"]
    """Output format. Defaults to ``tsv``."""
    database: NotRequired[str]
    """Database used for unqualified table names."""
    method: NotRequired[Literal["GET", "POST"]]
    """HTTP method. ``GET`` only allows read-only queries. Defaults to ``POST``."""
    decode_body: NotRequired[bool]
    """Decode text and JSON bodies. Defaults to True."""


CONNECTION_CONFIG_KEYS: Final[frozenset[str]] = frozenset(ConnectionConfig.__annotations__)
QUERY_OPTION_KEYS: Final[frozenset[str]] = frozenset(QueryOptions.__annotations__)
_HTTPX_CLIENT_KEYS: Final = ("auth", "timeout", "verify", "transport")


class ClickHouseConfig:
    """Configuration for a :class:`~chquery.client.ClickHouseClient`."""

    __slots__ = ("connection_config", "query_options")

    def __init__(
        self,
        *,
        connection_config: "Optional[Union[ConnectionConfig, dict[str, Any]]]" = None,
        query_options: "Optional[Union[QueryOptions, dict[str, Any]]]" = None,
    ) -> None:
        """Initialize ClickHouse configuration.

        Args:
            connection_config: Transport settings (``base_url``, ``auth``, ``headers``...).
            query_options: Default query options (``format``, ``database``...).

        Raises:
            ImproperConfigurationError: An option is not recognized.
        """
        self.connection_config: ConnectionConfig = dict(connection_config or {})  # type: ignore[assignment]
        self.query_options: QueryOptions = dict(query_options or {})  # type: ignore[assignment]
        check_option_keys(self.connection_config, CONNECTION_CONFIG_KEYS, "connection_config")
        check_option_keys(self.query_options, QUERY_OPTION_KEYS, "query_options")

    def __repr__(self) -> str:
        base_url = self.connection_config.get("base_url")
        return f"ClickHouseConfig(base_url={base_url!r}, query_options={self.query_options!r})"

    @classmethod
    def from_options(cls, **options: Any) -> "ClickHouseConfig":
        """Split a flat set of options into connection settings and query options.

        Raises:
            ImproperConfigurationError: An option is not recognized.
        """
        connection_config = {key: options.pop(key) for key in list(options) if key in CONNECTION_CONFIG_KEYS}
        return cls(connection_config=connection_config, query_options=options)

    @classmethod
    def from_env(
        cls, prefix: str = "CLICKHOUSE_", environ: "Optional[Mapping[str, str]]" = None
    ) -> "ClickHouseConfig":
        """Build a configuration from environment variables.

        Reads ``<prefix>URL``, ``<prefix>USER``, ``<prefix>PASSWORD``,
        ``<prefix>DATABASE`` and ``<prefix>FORMAT``. Unset variables are left to the defaults.

        Args:
            prefix: Variable name prefix.
            environ: Mapping to read instead of :data:`os.environ`.

        Returns:
            The configuration.
        """
        env = os.environ if environ is None else environ
        connection_config: dict[str, Any] = {}
        query_options: dict[str, Any] = {}
        if url := env.get(f"{prefix}URL"):
            connection_config["base_url"] = url
        if user := env.get(f"{prefix}USER"):
            connection_config["auth"] = (user, env.get(f"{prefix}PASSWORD", ""))
        if database := env.get(f"{prefix}DATABASE"):
            query_options["database"] = database
        if output_format := env.get(f"{prefix}FORMAT"):
            query_options["format"] = output_format
        return cls(connection_config=connection_config, query_options=query_options)

    def create_http_client(self) -> httpx.Client:
        """Create the httpx client queries are sent with."""
        client_config: dict[str, Any] = {
            key: self.connection_config[key]  # type: ignore[literal-required]
            for key in _HTTPX_CLIENT_KEYS
            if key in self.connection_config
        }
        client_config.setdefault("timeout", DEFAULT_TIMEOUT)
        logger.debug("Creating httpx client", extra={"extra_fields": {"options": sorted(client_config)}})
        return httpx.Client(**client_config)

    def create_client(self) -> "ClickHouseClient":
        """Create a client that owns its own httpx client."""
        from chquery.client import ClickHouseClient

        return ClickHouseClient(self)

    @contextmanager
    def provide_client(self) -> "Generator[ClickHouseClient, None, None]":
        """Provide a client, closing it on exit."""
        client = self.create_client()
        try:
            yield client
        finally:
            client.close()


def check_option_keys(options: "Mapping[str, Any]", allowed: "frozenset[str]", name: str) -> None:
    """Reject option keys outside ``allowed``.

    Raises:
        ImproperConfigurationError: An option is not recognized.
    """
    unknown = sorted(set(options) - allowed)
    if unknown:
        msg = f"Unknown {name} option(s) {unknown!r}. Expected any of {sorted(allowed)!r}"
        raise ImproperConfigurationError(msg)
