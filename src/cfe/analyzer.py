"""
Schema Analyzer — early diagnostics for page definitions.

This module provides lightweight analysis of a create form:
    - Property and section inventory
    - Gating fields and predicate targets
    - Predicates referencing undeclared fields
    - Nesting depth of conditional branches
    - Recommended wizard mode

IMPORTANT: This is a read-only layer. It does NOT modify the schema.
A malformed predicate is reported here, never raised: resolution simply
yields no properties for that branch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from cfe.model import CreateForm, PageDefinition, Section
from cfe.paging import Mode
from cfe.schema import all_properties, base_properties, iter_sections


@dataclass
class SchemaReport:
    """Analysis report for one create form."""

    total_properties: int = 0
    total_sections: int = 0
    conditional_sections: int = 0

    # Predicates
    gating_fields: List[str] = field(default_factory=list)
    undeclared_gates: Set[str] = field(default_factory=set)
    duplicate_properties: Set[str] = field(default_factory=set)

    # Structure
    max_conditional_depth: int = 0
    nested_gates: bool = False

    recommended_mode: Mode = Mode.SCROLLING

    warnings: List[str] = field(default_factory=list)

    def add_warning(self, msg: str) -> None:
        """Add a warning to the report."""
        if msg not in self.warnings:
            self.warnings.append(msg)


def _conditional_depth(sections, depth: int = 0) -> int:
    deepest = depth
    for section in sections:
        here = depth + 1 if section.used_if is not None else depth
        deepest = max(deepest, here, _conditional_depth(section.sections, here))
    return deepest


def analyze_create_form(form: Optional[CreateForm]) -> SchemaReport:
    """
    Perform analysis of a create form.

    Checks for:
    - Predicates gating on fields that are never declared
    - Properties declared more than once
    - How deep conditional sections nest

    Returns a SchemaReport with metrics and warnings.
    """
    report = SchemaReport()
    if form is None:
        return report

    declared: Dict[str, int] = {}
    for prop in form.properties:
        declared[prop.name] = declared.get(prop.name, 0) + 1

    sections: List[Section] = list(iter_sections(form.sections))
    report.total_sections = len(sections)

    for section in sections:
        for prop in section.properties:
            declared[prop.name] = declared.get(prop.name, 0) + 1
        if section.used_if is not None:
            report.conditional_sections += 1
            if section.used_if.property not in report.gating_fields:
                report.gating_fields.append(section.used_if.property)

    report.total_properties = len(all_properties(form))
    report.duplicate_properties = {name for name, count in declared.items() if count > 1}
    report.undeclared_gates = {name for name in report.gating_fields if name not in declared}

    report.max_conditional_depth = _conditional_depth(form.sections)
    report.nested_gates = report.max_conditional_depth > 1

    # Paging pays off once a branch can only be reached through another
    # page: a gated field whose own dependents are gated again, or a gate
    # that is not on the first page.
    base_names = {prop.name for prop in base_properties(form)}
    off_base = [name for name in report.gating_fields if name not in base_names]
    if report.nested_gates or off_base:
        report.recommended_mode = Mode.PAGING

    # =========================================================================
    # WARNING FLAGS
    # =========================================================================

    if report.undeclared_gates:
        report.add_warning(
            f"Predicates reference undeclared fields: {', '.join(sorted(report.undeclared_gates))}"
        )

    if report.duplicate_properties:
        report.add_warning(
            f"Properties declared more than once: {', '.join(sorted(report.duplicate_properties))}"
        )

    return report


def analyze_page_definition(page_definition: PageDefinition) -> SchemaReport:
    return analyze_create_form(page_definition.create_form)
