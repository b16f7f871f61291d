"""
Declared-type coercion for form values.

Turns raw widget values into the typed values sent to the backend, based
on the ``type`` (and ``array`` flag) declared for each property.

    string, date, properties, entitleNetExpression   -> str
    int, long                                        -> int
    double, float, number                            -> float
    boolean                                          -> bool
    secret, password                                 -> str
    list / array: true                               -> list
    reference, token, fileContents                   -> passthrough

Empty strings and None always convert to None.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from cfe.model import SchemaProperty

logger = logging.getLogger(__name__)

STRING_TYPES = frozenset({"string", "date", "properties", "entitleNetExpression"})
INTEGER_TYPES = frozenset({"int", "long"})
FLOAT_TYPES = frozenset({"double", "float", "number"})
SECRET_TYPES = frozenset({"secret", "password"})
PASSTHROUGH_TYPES = frozenset({"reference", "token", "fileContents"})

FROM_MODEL_TOKEN = "fromModelToken"
FROM_REG_VALUE = "fromRegValue"


class TypeCoercer:
    """Coerces values for a fixed set of declared properties."""

    def __init__(self, properties: Iterable[SchemaProperty]):
        self._by_name: Dict[str, SchemaProperty] = {}
        for prop in properties:
            self._by_name.setdefault(prop.name, prop)

    def declared_type(self, name: str) -> str:
        prop = self._by_name.get(name)
        return prop.type if prop is not None else "string"

    def is_array(self, name: str) -> bool:
        prop = self._by_name.get(name)
        return (prop is not None and prop.array) or self.declared_type(name) == "list"

    def is_string_type(self, name: str) -> bool:
        return not self.is_array(name) and self.declared_type(name) in STRING_TYPES

    def is_secret_type(self, name: str) -> bool:
        return self.declared_type(name) in SECRET_TYPES

    def convert(self, name: str, value: Any) -> Any:
        if value is None or (isinstance(value, str) and value == ""):
            return None
        if self.is_array(name):
            return _to_list(value)

        declared = self.declared_type(name)
        if declared in INTEGER_TYPES:
            return _to_number(name, value, int)
        if declared in FLOAT_TYPES:
            return _to_number(name, value, float)
        if declared == "boolean":
            return _to_bool(value)
        if declared in PASSTHROUGH_TYPES:
            return value
        return str(value)

    def convert_with_origin(self, name: str, value: Any, origin: Optional[str]) -> Any:
        """Model tokens pass through untouched; everything else converts."""
        if origin == FROM_MODEL_TOKEN:
            return None if value == "" else value
        return self.convert(name, value)


def _to_list(value: Any) -> Optional[list]:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        separator = "\n" if "\n" in value else ","
        items = [item.strip() for item in value.split(separator)]
        return [item for item in items if item]
    return [value]


def _to_number(name: str, value: Any, kind):
    try:
        return kind(value)
    except (TypeError, ValueError):
        logger.warning("Cannot convert %r for field %s to %s", value, name, kind.__name__)
        return None


def _to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text == "true":
        return True
    if text == "false":
        return False
    return None
