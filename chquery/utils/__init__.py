from chquery.utils import logging, module_loader

__all__ = ("logging", "module_loader")
