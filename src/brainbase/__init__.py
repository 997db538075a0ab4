"""
BrainBase - database, property, relation and formula engine.

Schemaless records with typed properties, bidirectional relations between
records, computed rollups and formulas, and saved views with filter, sort
and grouping.
"""

__version__ = "0.1.0"
__author__ = "BrainBase Team"
__license__ = "MIT"

__all__ = ["__version__"]
