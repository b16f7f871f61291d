"""
Read-only queries over a page definition (the schema model).

All functions here are pure: they walk the immutable section tree and
never touch the backing store.

    sections_for(...)                 sections opened by (field == value)
    properties_of(...)                properties declared directly on sections
    attributes_used_if_sections(...)  gated sections nested one level down
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from cfe.model import CreateForm, ParentLink, SchemaProperty, Section


def sections_for(
    sections: Sequence[Section],
    field_name: str,
    field_value: Any = None,
    parent: Optional[ParentLink] = None,
) -> List[Section]:
    """
    Find the sections gated by ``field_name``.

    Args:
        sections: Section tree to search
        field_name: Gating field
        field_value: When given, only sections whose predicate accepts it
        parent: When given, branches gated by ``parent.name`` on a value
            other than ``parent.value`` are not searched

    Returns:
        Matching sections in declaration order. A field that gates nothing
        (or is not declared at all) yields an empty list.
    """
    matched: List[Section] = []
    for section in sections:
        used_if = section.used_if
        if used_if is not None and used_if.gates(field_name):
            if field_value is None or used_if.matches(field_value):
                matched.append(section)
            continue
        if (
            parent is not None
            and used_if is not None
            and used_if.gates(parent.name)
            and not used_if.matches(parent.value)
        ):
            continue
        matched.extend(sections_for(section.sections, field_name, field_value, parent))
    return matched


def properties_of(sections: Iterable[Section]) -> List[SchemaProperty]:
    """
    Flatten one level of matched sections into declared properties.

    Ungated sub-sections are only layout, so their properties belong to the
    same level. Gated sub-sections are left for a later resolution.
    """
    seen = set()
    properties: List[SchemaProperty] = []
    for section in sections:
        for prop in section.properties:
            if prop.name not in seen:
                seen.add(prop.name)
                properties.append(prop)
        layout = [child for child in section.sections if child.used_if is None]
        for prop in properties_of(layout):
            if prop.name not in seen:
                seen.add(prop.name)
                properties.append(prop)
    return properties


def attributes_used_if_sections(sections: Iterable[Section]) -> List[Section]:
    """Gated sections nested directly inside already-matched sections."""
    nested: List[Section] = []
    for section in sections:
        for child in section.sections:
            if child.used_if is not None:
                nested.append(child)
    return nested


def base_sections(form: CreateForm) -> List[Section]:
    """Top-level sections that are always part of the form."""
    return [section for section in form.sections if section.used_if is None]


def base_properties(form: CreateForm) -> List[SchemaProperty]:
    """Properties shown before any predicate has been evaluated."""
    properties = list(form.properties)
    names = {prop.name for prop in properties}
    for prop in properties_of(base_sections(form)):
        if prop.name not in names:
            names.add(prop.name)
            properties.append(prop)
    return properties


def iter_sections(sections: Sequence[Section]) -> Iterable[Section]:
    for section in sections:
        yield section
        yield from iter_sections(section.sections)


def all_properties(form: CreateForm) -> List[SchemaProperty]:
    """Every declared property, first declaration wins, in declaration order."""
    seen = set()
    properties: List[SchemaProperty] = []
    for prop in list(form.properties) + [
        p for section in iter_sections(form.sections) for p in section.properties
    ]:
        if prop.name not in seen:
            seen.add(prop.name)
            properties.append(prop)
    return properties


def declaration_order(form: CreateForm) -> Dict[str, int]:
    return {prop.name: index for index, prop in enumerate(all_properties(form))}


def gating_fields(form: CreateForm) -> List[str]:
    """Names of fields that some predicate depends on, in first-use order."""
    names: List[str] = []
    for section in iter_sections(form.sections):
        if section.used_if is not None and section.used_if.property not in names:
            names.append(section.used_if.property)
    return names


def find_property(form: CreateForm, name: str) -> Optional[SchemaProperty]:
    for prop in all_properties(form):
        if prop.name == name:
            return prop
    return None
