"""
Conditional Dependency Resolver.

Reconciles the backing store with the schema's predicate tree whenever a
gating field changes value:

    1. remove every field gated by the old value (cascading), together with
       grouped keys belonging to the old value's sub-form instance
    2. remember the removed fields and flag a rerender
    3. add the fields opened by the new value
    4. promote dependents that gate nothing further to normal records

All passes walk the store's dependency graph or the schema's declaration
order, never map iteration order, so the resulting delta is deterministic.
"""

import logging
from typing import Any, List

from cfe.model import (
    ChangeResult,
    ConditionalAttribute,
    CreateForm,
    NormalAttribute,
    ParentLink,
    RemovedField,
    ResourceData,
    SchemaProperty,
)
from cfe.predicates import same_value
from cfe.schema import attributes_used_if_sections, properties_of, sections_for
from cfe.store import BackingDataStore

logger = logging.getLogger(__name__)


def _is_scalar(value: Any) -> bool:
    return not isinstance(value, (list, tuple, dict))


class ConditionalResolver:
    def __init__(self, store: BackingDataStore, form: CreateForm, resource: ResourceData):
        self.store = store
        self.form = form
        self.resource = resource

    # =========================================================================
    # ATTRIBUTE CREATION
    # =========================================================================

    def attribute_for(self, prop: SchemaProperty, parent: ParentLink = None) -> NormalAttribute:
        """
        Build the live record for a declared property.

        Base fields that gate nothing are normal records. Fields that gate
        something, and every field gated into existence, are conditional.
        """
        sections = sections_for(self.form.sections, prop.name, parent=parent)
        default = self.resource.default_for(prop.name)
        if parent is None and not sections:
            return NormalAttribute(name=prop.name, default=default, required=prop.required)
        return ConditionalAttribute(
            name=prop.name,
            default=default,
            required=prop.required,
            parent_link=parent,
            sections=tuple(sections),
        )

    # =========================================================================
    # VALUE CHANGES
    # =========================================================================

    def update(self, field_name: str, value: Any) -> ChangeResult:
        """
        Apply a new value to a conditional field and reconcile its dependents.

        Returns:
            ChangeResult with removed/added/promoted fields. rerender is set
            only when something was removed.
        """
        attr = self.store.get(field_name)
        result = ChangeResult()
        old_value = attr.value

        if old_value is not None and not same_value(old_value, value) and _is_scalar(old_value):
            logger.info("Field %s changed from %r to %r", field_name, old_value, value)
            result.removed = self.remove_dependents(field_name, old_value)
            result.rerender = len(result.removed) > 0

        new_value = None if value == "" else value
        self.store.set_value(field_name, new_value)
        if result.rerender:
            self.store.removed = list(result.removed)

        if new_value is not None and _is_scalar(new_value):
            result.added = self.add_dependents(field_name, new_value)
        result.promoted = self.promote_consumed(field_name, new_value)
        return result

    def remove_dependents(self, field_name: str, old_value: Any) -> List[RemovedField]:
        """
        Remove what old_value had opened.

        Graph dependents come first, in the order they were added, then
        grouped keys derived from old_value. A key reachable both ways is
        removed once. Derived keys gated by another field are left alone.
        """
        targets = self.store.dependents_of(field_name)
        for key in self.store.keys_derived_from(old_value, exclude=field_name):
            parent = self.store.parent_of(key)
            if parent is not None and parent != field_name:
                continue
            if key not in targets:
                targets.append(key)

        removed: List[RemovedField] = []
        for name in targets:
            # Earlier cascades may already have taken it.
            if name in self.store:
                removed.extend(self.store.remove(name))
        return removed

    def add_dependents(self, field_name: str, value: Any) -> List[str]:
        """Insert fresh conditional records for every section value opens."""
        attr = self.store.get(field_name)
        if not isinstance(attr, ConditionalAttribute):
            return []

        matched = [section for section in attr.sections if section.used_if.matches(value)]
        parent = ParentLink(name=field_name, value=value)
        added: List[str] = []
        for prop in properties_of(matched):
            if prop.name in self.store:
                continue
            self.store.add(self.attribute_for(prop, parent=parent))
            added.append(prop.name)
        if added:
            logger.debug("Field %s=%r added %s", field_name, value, ", ".join(added))
        return added

    def promote_consumed(self, field_name: str, value: Any) -> List[str]:
        """
        Freeze the dependents of field_name that gate nothing further.

        Their own children (if any were attached through nested sections)
        are repointed to (field_name, value) so removal still cascades from
        the field that opened them.
        """
        promoted: List[str] = []
        for name in self.store.dependents_of(field_name):
            attr = self.store.get(name)
            if not isinstance(attr, ConditionalAttribute):
                continue
            if attributes_used_if_sections(attr.sections) or self._gates_anything(attr):
                continue
            for child in self.store.dependents_of(name):
                self.store.repoint(child, ParentLink(name=field_name, value=value))
            self.store.promote(name)
            promoted.append(name)
        return promoted

    def _gates_anything(self, attr: ConditionalAttribute) -> bool:
        return any(section.used_if.gates(attr.name) for section in attr.sections)
