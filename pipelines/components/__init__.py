"""KFP v2 components — each file exports one @dsl.component."""

from pipelines.components.load import load_catalog

__all__ = [
    "load_catalog",
]
