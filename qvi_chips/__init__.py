"""
Top-level package for the chips transaction analysis.
"""

__all__ = [
    "Checkpoint",
    "CleaningReport",
    "ParseError",
    "ProjectConfig",
    "SchemaError",
    "parse_product",
    "run_all",
]

from .errors import ParseError, SchemaError
from .pipeline import Checkpoint, CleaningReport, ProjectConfig, run_all  # convenience re-export
from .products import parse_product
