"""Dependency tracking between computed properties.

Formula properties depend on the properties their expression references;
rollup properties depend on the relation they aggregate through. The
graph answers two questions: what must be invalidated when a property
changes, and would a definition introduce a cycle.
"""

from collections import defaultdict, deque
from collections.abc import Iterable
from typing import Any

from brainbase.core.exceptions import FormulaSyntaxError
from brainbase.formula.parser import collect_property_refs, parse_formula
from brainbase.models.property import PropertyType


def resolve_reference(ref: str, properties: Iterable[dict[str, Any]]) -> dict[str, Any] | None:
    """Match an expression reference against property ids, then names (case-insensitive)."""
    props = list(properties)
    for prop in props:
        if prop["id"] == ref:
            return prop
    lowered = ref.strip().lower()
    for prop in props:
        if prop["name"].strip().lower() == lowered:
            return prop
    return None


def expression_dependencies(
    expression: str, properties: Iterable[dict[str, Any]]
) -> tuple[list[str], list[str]]:
    """
    Resolve the property references in an expression.

    Returns:
        (property ids referenced, reference names that match nothing)
    """
    props = list(properties)
    ids: list[str] = []
    unknown: list[str] = []
    for ref in collect_property_refs(parse_formula(expression)):
        prop = resolve_reference(ref, props)
        if prop is None:
            unknown.append(ref)
        elif prop["id"] not in ids:
            ids.append(prop["id"])
    return ids, unknown


def property_dependencies(prop: dict[str, Any], properties: Iterable[dict[str, Any]]) -> set[str]:
    """Direct dependencies of a computed property (empty for stored types)."""
    config = prop.get("config") or {}
    if prop["type"] == PropertyType.FORMULA.value:
        try:
            ids, _ = expression_dependencies(config.get("expression", ""), properties)
        except FormulaSyntaxError:
            return set(config.get("dependencies") or [])
        return set(ids)
    if prop["type"] == PropertyType.ROLLUP.value:
        relation_id = config.get("relation_property_id")
        return {relation_id} if relation_id else set()
    return set()


class FormulaDependencyGraph:
    """
    Dependencies among the properties of one database.

    - dependents: property_id -> properties that must be recomputed when it changes
    - reverse: property_id -> properties it reads
    """

    def __init__(self) -> None:
        self.dependents: dict[str, set[str]] = defaultdict(set)
        self.reverse: dict[str, set[str]] = defaultdict(set)

    @classmethod
    def from_properties(cls, properties: Iterable[dict[str, Any]]) -> "FormulaDependencyGraph":
        """Build the graph for every computed property in a schema."""
        props = list(properties)
        graph = cls()
        for prop in props:
            deps = property_dependencies(prop, props)
            if deps:
                graph.set_dependencies(prop["id"], deps)
        return graph

    def set_dependencies(self, property_id: str, depends_on: set[str]) -> None:
        """Replace the dependencies of a property without checking for cycles."""
        for old in self.reverse.get(property_id, set()):
            self.dependents[old].discard(property_id)
        self.reverse[property_id] = set(depends_on)
        for dep in depends_on:
            self.dependents[dep].add(property_id)

    def add_property(self, property_id: str, depends_on: set[str]) -> tuple[bool, str | None]:
        """
        Add or replace a computed property.

        Returns:
            (success, error message); the graph is unchanged on failure
        """
        chain = self.find_cycle(property_id, depends_on)
        if chain:
            return False, "Circular reference: " + " -> ".join(chain)
        self.set_dependencies(property_id, depends_on)
        return True, None

    def remove_property(self, property_id: str) -> None:
        for dep in self.reverse.pop(property_id, set()):
            self.dependents[dep].discard(property_id)
        self.dependents.pop(property_id, None)

    def get_affected(self, changed_property_id: str) -> list[str]:
        """All transitive dependents of a property, breadth-first."""
        affected: list[str] = []
        queue = deque([changed_property_id])
        seen = {changed_property_id}

        while queue:
            current = queue.popleft()
            for dependent in sorted(self.dependents.get(current, ())):
                if dependent not in seen:
                    seen.add(dependent)
                    affected.append(dependent)
                    queue.append(dependent)

        return affected

    def get_evaluation_order(self, property_ids: set[str]) -> list[str]:
        """
        Topological order (Kahn's algorithm) of the given properties.

        Returns an empty list if they contain a cycle.
        """
        in_degree = {pid: 0 for pid in property_ids}
        for pid in property_ids:
            for dep in self.reverse.get(pid, ()):
                if dep in property_ids:
                    in_degree[pid] += 1

        queue = deque(sorted(pid for pid, degree in in_degree.items() if degree == 0))
        result: list[str] = []
        while queue:
            pid = queue.popleft()
            result.append(pid)
            for dependent in sorted(self.dependents.get(pid, ())):
                if dependent in in_degree:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        queue.append(dependent)

        return result if len(result) == len(property_ids) else []

    def find_cycle(self, property_id: str, depends_on: set[str]) -> list[str]:
        """
        Path that would close a cycle if ``property_id`` read ``depends_on``.

        Returns an empty list when no cycle would form.
        """
        if property_id in depends_on:
            return [property_id, property_id]

        # DFS from each dependency looking for a path back to property_id
        for start in sorted(depends_on):
            stack: list[tuple[str, list[str]]] = [(start, [property_id, start])]
            visited: set[str] = set()
            while stack:
                current, path = stack.pop()
                if current == property_id:
                    return path
                if current in visited:
                    continue
                visited.add(current)
                for dep in self.reverse.get(current, ()):
                    stack.append((dep, path + [dep]))
        return []

    def get_dependencies(self, property_id: str) -> set[str]:
        return set(self.reverse.get(property_id, set()))

    def get_dependents(self, property_id: str) -> set[str]:
        return set(self.dependents.get(property_id, set()))

    def __repr__(self) -> str:
        return (
            f"FormulaDependencyGraph("
            f"properties={len(self.reverse)}, "
            f"edges={sum(len(deps) for deps in self.dependents.values())})"
        )
