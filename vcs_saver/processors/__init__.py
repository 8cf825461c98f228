"""Processor registry: auto-discovers Processor subclasses in this package."""

import importlib
import pkgutil

from .base import Processor


def discover_processors() -> list[Processor]:
    """Instantiate every Processor defined in this package, sorted by priority."""
    processors = []
    for info in pkgutil.iter_modules(__path__):
        if info.name == "base":
            continue
        module = importlib.import_module(f"{__name__}.{info.name}")
        for obj in vars(module).values():
            if (
                isinstance(obj, type)
                and issubclass(obj, Processor)
                and obj is not Processor
                and obj.__module__ == module.__name__
            ):
                processors.append(obj())
    processors.sort(key=lambda p: p.priority)
    return processors
