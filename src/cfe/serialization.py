"""
Serialization helpers for page definitions, resource data and the store.

Page definitions arrive as PDJ JSON (or YAML, for hand-written fixtures)
and are parsed into the immutable model. This module keeps the mapping
between wire names and model fields explicit.
"""
from __future__ import annotations

import json
from typing import Any, Dict

import yaml

from cfe.model import (
    ConditionalAttribute,
    CreateForm,
    PageDefinition,
    ResourceData,
    SchemaProperty,
    Section,
)
from cfe.predicates import UsedIf, used_if_from_values
from cfe.store import BackingDataStore


def used_if_to_dict(u: UsedIf | None) -> Dict[str, Any] | None:
    if u is None:
        return None
    return {"property": u.property, "values": list(u.values)}


def used_if_from_dict(d: Dict[str, Any] | None) -> UsedIf | None:
    if d is None:
        return None
    if "values" in d:
        return used_if_from_values(d["property"], d["values"])
    return used_if_from_values(d["property"], [d.get("value")])


def property_to_dict(p: SchemaProperty) -> Dict[str, Any]:
    d: Dict[str, Any] = {"name": p.name, "label": p.label, "type": p.type}
    if p.array:
        d["array"] = True
    if p.required:
        d["required"] = True
    if p.help_summary is not None:
        d["helpSummaryHTML"] = p.help_summary
    return d


def property_from_dict(d: Dict[str, Any]) -> SchemaProperty:
    return SchemaProperty(
        name=d["name"],
        label=d.get("label", ""),
        type=d.get("type", "string"),
        array=bool(d.get("array", False)),
        required=bool(d.get("required", False)),
        help_summary=d.get("helpSummaryHTML"),
    )


def section_to_dict(s: Section) -> Dict[str, Any]:
    d: Dict[str, Any] = {}
    if s.name is not None:
        d["name"] = s.name
    if s.title is not None:
        d["title"] = s.title
    if s.properties:
        d["properties"] = [property_to_dict(p) for p in s.properties]
    if s.sections:
        d["sections"] = [section_to_dict(child) for child in s.sections]
    if s.used_if is not None:
        d["usedIf"] = used_if_to_dict(s.used_if)
    return d


def section_from_dict(d: Dict[str, Any]) -> Section:
    return Section(
        name=d.get("name"),
        title=d.get("title"),
        properties=tuple(property_from_dict(p) for p in d.get("properties", [])),
        sections=tuple(section_from_dict(child) for child in d.get("sections", [])),
        used_if=used_if_from_dict(d.get("usedIf")),
    )


def create_form_from_dict(d: Dict[str, Any] | None) -> CreateForm | None:
    if d is None:
        return None
    return CreateForm(
        properties=tuple(property_from_dict(p) for p in d.get("properties", [])),
        sections=tuple(section_from_dict(s) for s in d.get("sections", [])),
    )


def page_definition_to_dict(pd: PageDefinition) -> Dict[str, Any]:
    d: Dict[str, Any] = {
        "helpPageTitle": pd.help_page_title,
        "introductionHTML": pd.introduction_html,
    }
    if pd.create_form is not None:
        d["createForm"] = {
            "properties": [property_to_dict(p) for p in pd.create_form.properties],
            "sections": [section_to_dict(s) for s in pd.create_form.sections],
        }
    if pd.properties:
        d["properties"] = [property_to_dict(p) for p in pd.properties]
    return d


def page_definition_from_dict(d: Dict[str, Any]) -> PageDefinition:
    return PageDefinition(
        help_page_title=d.get("helpPageTitle"),
        introduction_html=d.get("introductionHTML"),
        create_form=create_form_from_dict(d.get("createForm")),
        properties=tuple(property_from_dict(p) for p in d.get("properties", [])),
    )


def page_definition_from_json(s: str) -> PageDefinition:
    return page_definition_from_dict(json.loads(s))


def page_definition_from_yaml(s: str) -> PageDefinition:
    return page_definition_from_dict(yaml.safe_load(s))


def page_definition_to_yaml(pd: PageDefinition) -> str:
    return yaml.safe_dump(page_definition_to_dict(pd), sort_keys=False)


def resource_data_from_dict(d: Dict[str, Any] | None) -> ResourceData:
    d = d or {}
    return ResourceData(data=dict(d.get("data") or {}), self_info=dict(d.get("self") or {}))


def resource_data_from_json(s: str) -> ResourceData:
    return resource_data_from_dict(json.loads(s))


def store_to_dict(store: BackingDataStore) -> Dict[str, Any]:
    """Plain view of the live records, keyed by field name, in store order."""
    out: Dict[str, Any] = {}
    for attr in store.attributes():
        d: Dict[str, Any] = {
            "type": attr.kind,
            "default": attr.default,
            "value": attr.value,
            "required": attr.required,
            "visible": attr.visible,
            "disabled": attr.disabled,
        }
        if isinstance(attr, ConditionalAttribute):
            used_if: Dict[str, Any] = {}
            if attr.parent is not None:
                used_if["parent"] = {"name": attr.parent.name, "value": attr.parent.value}
            if attr.sections:
                used_if["sections"] = [section_to_dict(s) for s in attr.sections]
            d["usedIf"] = used_if
        out[attr.name] = d
    return out
