"""View engine: pure filter, sort and group pipeline over resolved records."""

from brainbase.views.engine import (
    ViewDefinition,
    ViewRecord,
    ViewResult,
    apply_filters,
    apply_grouping,
    apply_sorts,
    run_view,
    validate_view,
)
from brainbase.views.filters import FilterCondition, FilterGroup, parse_filter_tree
from brainbase.views.groups import GroupConfig, RecordGroup
from brainbase.views.sorts import SortSpec

__all__ = [
    "FilterCondition",
    "FilterGroup",
    "GroupConfig",
    "RecordGroup",
    "SortSpec",
    "ViewDefinition",
    "ViewRecord",
    "ViewResult",
    "apply_filters",
    "apply_grouping",
    "apply_sorts",
    "parse_filter_tree",
    "run_view",
    "validate_view",
]
