"""Helpers for optional dependencies."""

from typing import Any

from chquery.exceptions import MissingDependencyError

__all__ = ("ensure_polars", "import_polars")


def ensure_polars(feature: str = "format: 'dataframe'") -> None:
    """Ensure polars is available.

    The flag is read from :mod:`chquery.typing` at call time so every caller sees the same answer.

    Args:
        feature: Feature name reported in the error message.

    Raises:
        MissingDependencyError: polars is not installed.
    """
    from chquery import typing as chquery_typing

    if not chquery_typing.POLARS_INSTALLED:
        raise MissingDependencyError(package="polars", install_package="dataframe", feature=feature)


def import_polars() -> Any:
    """Import and return the polars module after checking it is installed.

    Returns:
        The ``polars`` module.
    """
    ensure_polars()

    import polars

    return polars
