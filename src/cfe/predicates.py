"""
Predicate System for Conditional Forms

Every conditional section in a page definition carries a ``usedIf``
predicate. A predicate is structure only: it names the gating field and
the values that open the section.

Example:
    {"usedIf": {"property": "DatasourceType", "values": ["GridLink"]}}

Becomes:
    UsedIf(property="DatasourceType", values=("GridLink",))

ARCHITECTURAL RULE:
    Predicates never look at live data themselves.
    The caller supplies the value to test.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Tuple


@dataclass(frozen=True)
class UsedIf:
    """
    Gate for a schema section.

    Properties:
        property:
            Name of the gating field (e.g. "DatasourceType")

        values:
            Values of the gating field that include the section.
            Multiple sibling sections may gate on the same field; every
            matching one is included.

    IMPORTANT:
        This object is immutable (frozen=True).
        Values are stored as a tuple so the predicate is hashable.
    """

    property: str
    values: Tuple[Any, ...] = ()

    def matches(self, value: Any) -> bool:
        """
        Test a field value against this predicate.

        Lists never match: multi-valued fields do not gate sections.
        """
        if value is None or isinstance(value, (list, tuple)):
            return False
        return any(same_value(value, candidate) for candidate in self.values)

    def gates(self, field_name: str) -> bool:
        return self.property == field_name


def same_value(value: Any, candidate: Any) -> bool:
    # Schema values arrive as JSON; select widgets often hand back strings.
    if value == candidate:
        return True
    if isinstance(candidate, bool) or isinstance(value, bool):
        return str(value).lower() == str(candidate).lower()
    return str(value) == str(candidate)


def used_if_from_values(property_name: str, values: Iterable[Any]) -> UsedIf:
    return UsedIf(property=property_name, values=tuple(values))
