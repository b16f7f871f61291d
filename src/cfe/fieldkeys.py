"""
Field group keys.

Some forms duplicate a sub-form per choice of another field (one set of
JDBC connection fields per driver, for example). The duplicated fields are
named ``<instance>_<member>`` where the instance part contains the
``_COLON_`` delimiter:

    "DriverName_COLON_Oracle_DbmsUser"
        instance = "DriverName_COLON_Oracle"
        member   = "DbmsUser"

Plain keys (no delimiter) have no group and never match by group.
"""

from dataclasses import dataclass
from typing import Any, Optional

from cfe.predicates import same_value

DEFAULT_DELIMITER = "_COLON_"


@dataclass(frozen=True)
class FieldKey:
    name: str
    instance: Optional[str] = None
    member: Optional[str] = None
    delimiter: str = DEFAULT_DELIMITER

    @property
    def is_grouped(self) -> bool:
        return self.member is not None

    @property
    def instance_value(self) -> Optional[str]:
        """The gating value this instance was created for (after the last delimiter)."""
        if not self.is_grouped:
            return None
        return self.instance.rsplit(self.delimiter, 1)[1]

    def derives_from(self, value: Any) -> bool:
        """True when this key belongs to the sub-form instance created for value."""
        if not self.is_grouped or value is None or isinstance(value, (list, tuple)):
            return False
        if str(value) == "":
            return False
        return same_value(value, self.instance_value)

    def same_member(self, other: "FieldKey") -> bool:
        return self.is_grouped and other.is_grouped and self.member == other.member


def parse_field_key(name: str, delimiter: str = DEFAULT_DELIMITER) -> FieldKey:
    if delimiter not in name:
        return FieldKey(name=name)
    pos = name.rfind("_")
    instance, member = name[:pos], name[pos + 1:]
    if not member or delimiter not in instance:
        # The last "_" belongs to the delimiter itself.
        return FieldKey(name=name)
    return FieldKey(name=name, instance=instance, member=member, delimiter=delimiter)


def replacer_for(name: str, delimiter: str = DEFAULT_DELIMITER) -> Optional[str]:
    """Return the member part of a grouped key, or None."""
    return parse_field_key(name, delimiter).member
