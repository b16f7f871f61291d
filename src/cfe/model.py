"""
Core Form Model Objects

Defines the fundamental data structures of the conditional form engine.

Two families live here:
    - Schema objects (page definition): immutable, declared once per session
        * SchemaProperty (a declared field)
        * Section (a group of fields, optionally gated by a predicate)
        * CreateForm / PageDefinition (root containers)
        * ResourceData (live values and identity of one resource)
    - Backing attributes (live store records): mutable, one per field
        * NormalAttribute
        * ConditionalAttribute (carries a dependency link)

ARCHITECTURAL RULE:
    Schema objects know nothing about the store.
    The store knows nothing about rendering.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from cfe.predicates import UsedIf


CREATABLE_OPTIONAL_SINGLETON = "creatableOptionalSingleton"


class FormEngineError(Exception):
    """Base class for errors raised by the form engine."""
    pass


@dataclass(frozen=True)
class SchemaProperty:
    """
    A declared form field.

    Properties:
        name:
            Field identifier, also the key used in the submission payload
            Examples: "Name", "DatasourceType", "GridLinkUrl"

        label:
            Human-readable label, used in validation messages

        type:
            Declared type, drives coercion (see coercion.py)
            Examples: "string", "int", "boolean", "secret", "fileContents"

        array:
            True when the field holds a list of values

        required:
            Whether a value must be supplied before finishing
    """

    name: str
    label: str = ""
    type: str = "string"
    array: bool = False
    required: bool = False
    help_summary: Optional[str] = None

    @property
    def display_label(self) -> str:
        return self.label or self.name


@dataclass(frozen=True)
class Section:
    """
    A group of properties, possibly nested, possibly gated.

    If used_if is None the section is always part of the form.
    Otherwise the section (with everything nested inside it) is only
    included while the gating field holds one of the predicate values.

    Example:
        Section(
            name="GridLink",
            used_if=UsedIf("DatasourceType", ("GridLink",)),
            properties=(SchemaProperty("GridLinkUrl", required=True),),
        )
    """

    name: Optional[str] = None
    title: Optional[str] = None
    properties: Tuple[SchemaProperty, ...] = ()
    sections: Tuple["Section", ...] = ()
    used_if: Optional[UsedIf] = None

    @property
    def is_conditional(self) -> bool:
        return self.used_if is not None


@dataclass(frozen=True)
class CreateForm:
    """The ``createForm`` block of a page definition."""

    properties: Tuple[SchemaProperty, ...] = ()
    sections: Tuple[Section, ...] = ()

    @property
    def has_sections(self) -> bool:
        return len(self.sections) > 0


@dataclass(frozen=True)
class PageDefinition:
    """
    Root schema container (PDJ).

    A page definition without a create form is only valid for resources
    whose kind is "creatableOptionalSingleton".
    """

    help_page_title: Optional[str] = None
    introduction_html: Optional[str] = None
    create_form: Optional[CreateForm] = None
    properties: Tuple[SchemaProperty, ...] = ()


@dataclass
class ResourceData:
    """
    Live resource snapshot (RDJ).

    Properties:
        data:
            Field name -> {"value": ..., ...}

        self_info:
            Identity block; "kind" and "resourceData" are the keys in use
    """

    data: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    self_info: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> Optional[str]:
        return self.self_info.get("kind")

    @property
    def resource_data_uri(self) -> Optional[str]:
        return self.self_info.get("resourceData")

    def default_for(self, name: str) -> Any:
        entry = self.data.get(name)
        if isinstance(entry, dict):
            return entry.get("value")
        return None


# =========================================================================
# BACKING ATTRIBUTES
# =========================================================================


@dataclass(frozen=True)
class ParentLink:
    """The field (and its value) that gated an attribute into existence."""

    name: str
    value: Any = None


@dataclass
class NormalAttribute:
    """
    Live record for one field (the TDVRDU record).

    Properties:
        default:  value sourced from resource data at creation
        value:    current user value, None until set
        required / visible / disabled:  rendering-state flags
    """

    name: str
    default: Any = None
    value: Any = None
    required: bool = False
    visible: bool = True
    disabled: bool = False

    kind = "normal"

    @property
    def parent(self) -> Optional[ParentLink]:
        return None


@dataclass
class ConditionalAttribute(NormalAttribute):
    """
    A record with an active dependency link.

    Properties:
        parent:
            Gating field and value. None only for top-level gating fields,
            which are gated by the form itself.

        sections:
            Raw schema fragments enumerating this field's own dependents
    """

    parent_link: Optional[ParentLink] = None
    sections: Tuple[Section, ...] = ()

    kind = "conditional"

    @property
    def parent(self) -> Optional[ParentLink]:
        return self.parent_link

    def promoted(self) -> NormalAttribute:
        """Freeze this attribute into a normal one, keeping its state."""
        return NormalAttribute(
            name=self.name,
            default=self.default,
            value=self.value,
            required=self.required,
            visible=self.visible,
            disabled=self.disabled,
        )

    def repointed(self, parent: ParentLink) -> "ConditionalAttribute":
        return replace(self, parent_link=parent)


@dataclass(frozen=True)
class UploadedFile:
    """A file picked for a ``fileContents`` field, sent as a multipart part."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


@dataclass(frozen=True)
class RemovedField:
    """Name and last value of a field removed by a resolution pass."""

    name: str
    value: Any = None


@dataclass
class ChangeResult:
    """
    Delta produced by one value change.

    rerender is True only when fields were removed; added fields are
    reported separately so the view layer can reconcile both.
    """

    rerender: bool = False
    removed: List[RemovedField] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    promoted: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.added)
