"""Optional dependency detection.

Flags are computed once at import time from the import machinery, without
importing the optional packages themselves.
"""

from importlib.util import find_spec
from typing import Final

__all__ = ("POLARS_INSTALLED", "RICH_CLICK_INSTALLED", "module_available")


def module_available(name: str) -> bool:
    """Check whether a top-level module can be imported.

    Args:
        name: Importable module name.

    Returns:
        True when the module is installed.
    """
    try:
        return find_spec(name) is not None
    except (ImportError, ValueError):
        return False


POLARS_INSTALLED: Final[bool] = module_available("polars")
RICH_CLICK_INSTALLED: Final[bool] = module_available("rich_click")
