"""
Backing Data Store

The live field records of one form session.

The store is an insertion-ordered map of field name -> attribute, plus an
explicit dependency graph (gating field -> dependent fields) kept in step
with the attributes' parent links. Cascading removal walks that graph, so
removal order never depends on incidental map iteration.

INVARIANTS:
    - A field added with a parent link appears exactly once in the
      dependents list of that parent, and keeps that edge when promoted
    - Removing a field removes every field below it in the graph
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterator, List, Optional

from cfe.fieldkeys import DEFAULT_DELIMITER, parse_field_key
from cfe.model import (
    ConditionalAttribute,
    NormalAttribute,
    ParentLink,
    RemovedField,
    UploadedFile,
)

logger = logging.getLogger(__name__)


class BackingDataStore:
    def __init__(self, delimiter: str = DEFAULT_DELIMITER):
        self.delimiter = delimiter
        self._attributes: "OrderedDict[str, NormalAttribute]" = OrderedDict()
        self._dependents: Dict[str, List[str]] = {}
        self._parent_of: Dict[str, str] = {}
        # Fields removed by the most recent resolution, consumed by the
        # payload builder to carry values across duplicated sub-forms.
        self.removed: List[RemovedField] = []
        self.uploads: Dict[str, UploadedFile] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._attributes

    def __len__(self) -> int:
        return len(self._attributes)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._attributes))

    def get(self, name: str) -> Optional[NormalAttribute]:
        return self._attributes.get(name)

    def names(self) -> List[str]:
        return list(self._attributes)

    def attributes(self) -> List[NormalAttribute]:
        return list(self._attributes.values())

    def conditional_attributes(self) -> List[ConditionalAttribute]:
        return [attr for attr in self._attributes.values() if isinstance(attr, ConditionalAttribute)]

    # =========================================================================
    # MUTATION
    # =========================================================================

    def add(self, attribute: NormalAttribute) -> bool:
        """Insert an attribute. Existing entries are never overwritten."""
        if attribute.name in self._attributes:
            return False
        self._attributes[attribute.name] = attribute
        if attribute.parent is not None:
            self._link(attribute.name, attribute.parent.name)
        return True

    def set_value(self, name: str, value: Any) -> None:
        self._attributes[name].value = value

    def promote(self, name: str) -> bool:
        attr = self._attributes.get(name)
        if not isinstance(attr, ConditionalAttribute):
            return False
        # The graph edge survives: a promoted field still goes away with
        # the field that gated it.
        self._attributes[name] = attr.promoted()
        logger.debug("Promoted %s to normal", name)
        return True

    def repoint(self, name: str, parent: ParentLink) -> None:
        """Move a field under a new gating field."""
        attr = self._attributes[name]
        self._unlink(name)
        if isinstance(attr, ConditionalAttribute):
            self._attributes[name] = attr.repointed(parent)
        self._link(name, parent.name)

    def remove(self, name: str) -> List[RemovedField]:
        """
        Remove a field and, depth first, every field that depends on it.

        Returns:
            RemovedField records in removal order; empty if name is absent
        """
        attr = self._attributes.get(name)
        if attr is None:
            return []
        removed = [RemovedField(name=name, value=attr.value)]
        del self._attributes[name]
        self._unlink(name)
        self.uploads.pop(name, None)
        for child in list(self._dependents.pop(name, [])):
            removed.extend(self.remove(child))
        logger.debug("Removed %s", ", ".join(entry.name for entry in removed))
        return removed

    # =========================================================================
    # GRAPH AND KEY QUERIES
    # =========================================================================

    def dependents_of(self, name: str) -> List[str]:
        return list(self._dependents.get(name, []))

    def keys_derived_from(self, value: Any, exclude: Optional[str] = None) -> List[str]:
        """Grouped keys belonging to the sub-form instance created for value."""
        return [
            key for key in self._attributes
            if key != exclude and parse_field_key(key, self.delimiter).derives_from(value)
        ]

    def keys_with_member(self, member: str) -> List[str]:
        return [
            key for key in self._attributes
            if parse_field_key(key, self.delimiter).member == member
        ]

    def parent_of(self, name: str) -> Optional[str]:
        return self._parent_of.get(name)

    def _link(self, name: str, parent_name: str) -> None:
        self._parent_of[name] = parent_name
        dependents = self._dependents.setdefault(parent_name, [])
        if name not in dependents:
            dependents.append(name)

    def _unlink(self, name: str) -> None:
        parent_name = self._parent_of.pop(name, None)
        if parent_name is not None and name in self._dependents.get(parent_name, []):
            self._dependents[parent_name].remove(name)
