"""
Payload Builder — projects form state into the submission wire format.

Per property, in order:
    1. raw value: backing attribute (if set), else caller field value, else None
    2. coerce by declared type
    3. None -> attribute default; still None and string/secret -> ""
    4. wrap as {"value": v}, unless the field's origin is a model token

Scrubbing then removes what the backend must not see, and the multipart
path moves file fields out of the JSON body into binary parts.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from cfe.coercion import FROM_MODEL_TOKEN, FROM_REG_VALUE, TypeCoercer
from cfe.fieldkeys import parse_field_key
from cfe.model import SchemaProperty, UploadedFile
from cfe.operations import MultipartPart, MultipartRequest
from cfe.store import BackingDataStore

logger = logging.getLogger(__name__)

FILE_CONTENTS = "fileContents"
REQUEST_BODY_PART = "requestBody"


@dataclass
class PayloadResult:
    properties: List[SchemaProperty] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)


def _read(values: Optional[Mapping[str, Any]], name: str) -> Any:
    if values is None or name not in values:
        return None
    value = values[name]
    # Accept observable-style zero-argument callables as well as plain values.
    return value() if callable(value) else value


class PayloadBuilder:
    def __init__(self, store: Optional[BackingDataStore], default_for: Callable[[str], Any]):
        self.store = store
        self.default_for = default_for

    def build(
        self,
        properties: Sequence[SchemaProperty],
        field_values: Optional[Mapping[str, Any]] = None,
        field_values_from: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        coercer = TypeCoercer(properties)
        self.restore_removed(properties)

        data: Dict[str, Any] = {}
        for prop in properties:
            name = prop.name
            origin = None
            if field_values_from is not None:
                origin = _read(field_values_from, name) or FROM_REG_VALUE

            value = None
            attr = self.store.get(name) if self.store is not None else None
            if attr is not None and attr.value is not None:
                value = coercer.convert_with_origin(name, attr.value, origin)
            elif attr is None:
                raw = _read(field_values, name)
                if raw is not None:
                    value = coercer.convert_with_origin(name, raw, origin)

            if value is None:
                default = self.default_for(name)
                if default is not None:
                    value = default
                if value is None and (coercer.is_string_type(name) or coercer.is_secret_type(name)):
                    value = ""

            if origin == FROM_MODEL_TOKEN:
                data[name] = value
            else:
                data[name] = {"value": value}
        return data

    def restore_removed(self, properties: Sequence[SchemaProperty]) -> None:
        """
        Carry values of removed grouped keys over to their replacements.

        A removed "A_COLON_x_DbmsUser" hands its value to a present
        "A_COLON_y_DbmsUser". The removed list is consumed.
        """
        if self.store is None or not self.store.removed:
            return
        removed = self.store.removed
        for prop in properties:
            key = parse_field_key(prop.name, self.store.delimiter)
            if not key.is_grouped or prop.name not in self.store:
                continue
            for entry in removed:
                if entry.name != prop.name and parse_field_key(entry.name, self.store.delimiter).same_member(key):
                    self.store.set_value(prop.name, entry.value)
                    break
        self.store.removed = []


def scrub(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Remove fields the backend must not receive.

    - entries that are None, or wrapped with value ""
    - "Upload" (sent out of band)
    - "Targets" when its value is None; otherwise the cosmetic "label" of
      each entry and of each entry's nested value
    - "PlanPath" when empty

    Returns a new dict; scrubbing twice gives the same result.
    """
    if data is None:
        return None
    scrubbed = {
        key: value
        for key, value in copy.deepcopy(data).items()
        if value is not None and not (isinstance(value, dict) and value.get("value") == "")
    }
    scrubbed.pop("Upload", None)

    targets = scrubbed.get("Targets")
    if isinstance(targets, dict):
        if targets.get("value") is None:
            del scrubbed["Targets"]
        else:
            for entry in targets["value"]:
                if isinstance(entry, dict):
                    entry.pop("label", None)
                    if isinstance(entry.get("value"), dict):
                        entry["value"].pop("label", None)

    plan_path = scrubbed.get("PlanPath")
    if isinstance(plan_path, dict) and plan_path.get("value") == "":
        del scrubbed["PlanPath"]
    return scrubbed


def build_multipart(
    properties: Sequence[SchemaProperty],
    data: Dict[str, Any],
    uploads: Mapping[str, UploadedFile],
) -> MultipartRequest:
    """
    Move file fields out of a scrubbed body into binary parts.

    File fields without an upload are dropped from the body as well, so the
    backend never sees an empty file reference. The remaining body becomes
    the JSON ``requestBody`` part.
    """
    body = dict(data)
    request = MultipartRequest()
    for prop in properties:
        if prop.type != FILE_CONTENTS:
            continue
        entry = body.pop(prop.name, None)
        upload = uploads.get(prop.name)
        if upload is None:
            continue
        filename = upload.filename
        if isinstance(entry, dict) and entry.get("value"):
            filename = str(entry["value"])
        request.parts.append(
            MultipartPart(
                name=prop.name,
                content=upload.content,
                filename=filename,
                content_type=upload.content_type,
            )
        )

    request.parts.append(
        MultipartPart(
            name=REQUEST_BODY_PART,
            content=json.dumps({"data": body}).encode("utf-8"),
            content_type="application/json",
        )
    )
    logger.info("Multipart request parts: %s", ", ".join(request.names()))
    return request
