"""
Form session: one Create/Edit flow over a page definition.

The session owns the backing store and the paging state for its lifetime
and wires the resolver, paging state machine and payload builder
together:

    value_changed -> resolver -> store delta -> paging -> rerender listeners
    finish        -> required-field validation -> terminal state
    submit        -> payload builder -> scrub -> DataOperations

Nothing here is shared between sessions. dispose() cancels in-flight
requests and drops every listener.
"""

import asyncio
import logging
import warnings
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from cfe.analyzer import analyze_page_definition
from cfe.changes import ChangeSession, ChangeState
from cfe.coercion import TypeCoercer
from cfe.config import EngineConfig
from cfe.fieldkeys import replacer_for
from cfe.messages import NavigationResult, PageState
from cfe.model import (
    CREATABLE_OPTIONAL_SINGLETON,
    ChangeResult,
    ConditionalAttribute,
    FormEngineError,
    NormalAttribute,
    PageDefinition,
    RemovedField,
    ResourceData,
    SchemaProperty,
    UploadedFile,
)
from cfe.operations import DataOperations
from cfe.paging import Direction, Mode, PagingStateMachine
from cfe.payload import PayloadBuilder, PayloadResult, build_multipart, scrub
from cfe.resolver import ConditionalResolver
from cfe.schema import all_properties, base_properties, declaration_order
from cfe.serialization import store_to_dict
from cfe.store import BackingDataStore

logger = logging.getLogger(__name__)

RerenderListener = Callable[[PageDefinition, ResourceData, str, List[RemovedField]], None]


class SchemaViolationError(FormEngineError):
    """The page definition cannot back a create flow."""
    pass


class SessionDisposedError(FormEngineError):
    """The session was used after dispose()."""
    pass


class Subscription:
    def __init__(self, session: "FormSession", listener: RerenderListener):
        self._session = session
        self.listener = listener

    def unsubscribe(self) -> None:
        self._session._unsubscribe(self.listener)


class FormSession:
    """
    Create/Edit form session.

    Args:
        page_definition: PDJ for the resource type
        resource_data: RDJ for the resource being created or edited
        data_operations: async collaborator used by submit/new/delete
        change_session: shared lock/change state, signalled on delete
        on_rerender: listener called with (pdj, rdj, direction, removed)
        mode: SCROLLING or PAGING; None derives it from the schema
        config: EngineConfig
        rdj_url: upload target; defaults to the RDJ's self.resourceData

    Raises:
        SchemaViolationError: no create form and the resource is not a
            creatable optional singleton
    """

    def __init__(
        self,
        page_definition: PageDefinition,
        resource_data: ResourceData,
        *,
        data_operations: Optional[DataOperations] = None,
        change_session: Optional[ChangeSession] = None,
        on_rerender: Optional[RerenderListener] = None,
        mode: Optional[Mode] = None,
        config: Optional[EngineConfig] = None,
        rdj_url: Optional[str] = None,
    ):
        if page_definition.create_form is None and resource_data.kind != CREATABLE_OPTIONAL_SINGLETON:
            raise SchemaViolationError(
                "Page definition must have a create form, or describe a creatableOptionalSingleton."
            )

        self.config = config or EngineConfig()
        self.page_definition = page_definition
        self.resource_data = resource_data
        self.data_operations = data_operations
        self.change_session = change_session
        self.rdj_url = rdj_url

        self.store = BackingDataStore(self.config.group_delimiter)
        self.report = analyze_page_definition(page_definition)
        for warning in self.report.warnings:
            warnings.warn(warning, UserWarning)

        self.title: Optional[str] = None
        self.introduction_html: Optional[str] = None
        self.paging: Optional[PagingStateMachine] = None
        self.resolver: Optional[ConditionalResolver] = None
        self._declared: Dict[str, SchemaProperty] = {}
        self._finished = False

        form = page_definition.create_form
        if form is not None:
            self._declared = {prop.name: prop for prop in all_properties(form)}
        if form is not None and form.has_sections:
            selected = mode or self.config.default_mode or self.report.recommended_mode
            self.title = page_definition.help_page_title
            self.introduction_html = page_definition.introduction_html
            base = base_properties(form)
            self.paging = PagingStateMachine(base, selected, declaration_order(form))
            self.resolver = ConditionalResolver(self.store, form, resource_data)
            for prop in base:
                self.add_page_field(prop.name)

        self.payload_builder = PayloadBuilder(self.store, self.get_attribute_default)
        self._listeners: List[RerenderListener] = []
        if on_rerender is not None:
            self.subscribe(on_rerender)
        self._pending: Set[asyncio.Future] = set()
        self._disposed = False

    # =========================================================================
    # MODE AND NAVIGATION STATE
    # =========================================================================

    def is_wizard(self) -> bool:
        return self.paging is not None

    @property
    def mode(self) -> Mode:
        return self.paging.mode if self.paging is not None else Mode.SCROLLING

    @property
    def can_back(self) -> bool:
        return self.paging is not None and self.paging.can_back

    @property
    def can_next(self) -> bool:
        return self.paging is not None and self.paging.can_next

    @property
    def can_finish(self) -> bool:
        if self.paging is None:
            return not self._finished
        return self.paging.can_finish

    @property
    def finished(self) -> bool:
        return self.paging.finished if self.paging is not None else self._finished

    def render_properties(self) -> List[SchemaProperty]:
        if self.paging is not None:
            return self.paging.current_properties()
        form = self.page_definition.create_form
        return list(form.properties) if form is not None else []

    def rerender_page(self, direction: Direction) -> NavigationResult:
        self._check_alive()
        moved = False
        if self.paging is not None:
            before = self.paging.cursor
            self.paging.select(direction)
            moved = self.paging.cursor != before
        return NavigationResult(
            succeeded=moved,
            can_back=self.can_back,
            can_next=self.can_next,
            can_finish=self.can_finish,
        )

    def next(self) -> NavigationResult:
        return self.rerender_page(Direction.NEXT)

    def back(self) -> NavigationResult:
        return self.rerender_page(Direction.BACK)

    # =========================================================================
    # BACKING DATA
    # =========================================================================

    def add_page_field(self, name: str) -> None:
        """Create the live record for a rendered field, once."""
        if self.resolver is None or name in self.store:
            return
        prop = self._declared.get(name)
        if prop is None:
            logger.warning("Field %s is not declared by the create form", name)
            return
        self.store.add(self.resolver.attribute_for(prop))

    def value_changed(self, name: str, value: Any) -> ChangeResult:
        """
        Record a new field value and reconcile dependent fields.

        Conditional fields go through the resolver. A name missing from the
        store is treated as a stale grouped key: every stored key with the
        same member receives the value. Anything else is a plain update.
        """
        self._check_alive()
        attr = self.store.get(name)

        if isinstance(attr, ConditionalAttribute):
            result = self.resolver.update(name, value)
            for entry in result.removed:
                self.paging.delete_property(entry.name)
            if result.rerender:
                self.paging.reset_flows_allowed()
            if result.added:
                self.paging.add_properties(self._declared[added] for added in result.added)
            if result.changed:
                self._notify(Direction.NEXT, result.removed)
            return result

        if attr is None:
            member = replacer_for(name, self.config.group_delimiter)
            keys = self.store.keys_with_member(member) if member is not None else []
            for key in keys:
                self.store.set_value(key, value)
            if keys:
                self._notify(Direction.NEXT, [RemovedField(name=name, value=value)])
            return ChangeResult()

        self.store.set_value(name, None if value == "" else value)
        return ChangeResult()

    def _attribute(self, name: str) -> Optional[NormalAttribute]:
        return self.store.get(name)

    def get_attribute_type(self, name: str) -> Optional[str]:
        attr = self._attribute(name)
        return attr.kind if attr is not None else None

    def get_attribute_default(self, name: str) -> Any:
        attr = self._attribute(name)
        if attr is not None:
            return attr.default
        if name == "Upload":
            return self.resource_data.default_for(name)
        return None

    def get_attribute_value(self, name: str) -> Any:
        attr = self._attribute(name)
        return attr.value if attr is not None else None

    def is_required_attribute(self, name: str) -> Optional[bool]:
        attr = self._attribute(name)
        return attr.required if attr is not None else None

    def get_attribute_visible(self, name: str) -> Optional[bool]:
        attr = self._attribute(name)
        return attr.visible if attr is not None else None

    def get_attribute_disabled(self, name: str) -> Optional[bool]:
        attr = self._attribute(name)
        return attr.disabled if attr is not None else None

    def get_attribute_data(self, name: str) -> Optional[NormalAttribute]:
        return self._attribute(name)

    def get_attribute_replacer(self, name: str) -> Optional[str]:
        return replacer_for(name, self.config.group_delimiter)

    def snapshot(self) -> Dict[str, Any]:
        return store_to_dict(self.store)

    # =========================================================================
    # FINISH
    # =========================================================================

    def has_incomplete_required_attributes(self) -> PageState:
        """
        Check required, visible fields in scope for an empty converted value.

        Scope is the paging properties in PAGING mode, every discovered
        property otherwise. Messages follow declaration order.
        """
        if self.paging is None:
            properties = self.render_properties()
        elif self.paging.mode == Mode.PAGING:
            properties = self.paging.paging_properties()
        else:
            properties = self.paging.properties

        coercer = TypeCoercer(properties)
        page_state = PageState(auto_close_interval_ms=self.config.auto_close_interval_ms)
        for prop in properties:
            attr = self.store.get(prop.name)
            if attr is None or not attr.required or not attr.visible:
                continue
            if coercer.convert(prop.name, attr.value) is None:
                page_state.add_missing(prop.display_label)
        return page_state

    def mark_as_finished(self) -> PageState:
        self._check_alive()
        page_state = self.has_incomplete_required_attributes()
        if not page_state.succeeded:
            logger.info("Finish blocked: %d required field(s) missing", len(page_state.messages))
            return page_state
        if self.paging is not None:
            self.paging.mark_as_finished()
        else:
            self._finished = True
        return page_state

    # =========================================================================
    # UPLOADS AND PAYLOAD
    # =========================================================================

    def add_uploaded_file(self, name: str, upload: UploadedFile) -> None:
        if name in self.store:
            self.store.uploads[name] = upload

    def clear_uploaded_file(self, name: str) -> None:
        if name in self.store:
            self.store.uploads.pop(name, None)

    def has_multipart_data(self) -> bool:
        return len(self.store.uploads) > 0

    def has_deployment_path_data(self) -> bool:
        if "SourcePath" in self.store:
            return True
        form = self.page_definition.create_form
        return form is not None and any(prop.name == "SourcePath" for prop in form.properties)

    def get_data_payload(
        self,
        properties: Optional[List[SchemaProperty]] = None,
        field_values: Optional[Mapping[str, Any]] = None,
        field_values_from: Optional[Mapping[str, Any]] = None,
    ) -> PayloadResult:
        """
        Build the submission data for the active property set.

        Wizards use their own discovered properties (paging-scoped while an
        unfinished PAGING flow is in progress). Flat forms use the given
        properties, or the create form's, with values from field_values.
        """
        if self.paging is not None:
            properties = self.paging.properties
            if self.paging.mode == Mode.PAGING and not self.paging.finished:
                properties = self.paging.paging_properties()
        elif properties is None:
            properties = self.render_properties()

        data = self.payload_builder.build(properties, field_values, field_values_from)
        return PayloadResult(properties=list(properties), data=data)

    def scrub_data_payload(self, data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        return scrub(data)

    def get_deployment_data_payload(
        self,
        properties: Optional[List[SchemaProperty]] = None,
        field_values: Optional[Mapping[str, Any]] = None,
    ) -> PayloadResult:
        result = self.get_data_payload(properties, field_values)
        result.data = scrub(result.data)
        return result

    # =========================================================================
    # ASYNC COLLABORATOR CALLS
    # =========================================================================

    async def post_multipart_payload(
        self,
        properties: Optional[List[SchemaProperty]] = None,
        field_values: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        result = self.get_deployment_data_payload(properties, field_values)
        request = build_multipart(result.properties, result.data, self.store.uploads)
        return await self._run(self._operations().upload(self._target_uri(), request))

    async def submit(
        self,
        properties: Optional[List[SchemaProperty]] = None,
        field_values: Optional[Mapping[str, Any]] = None,
        field_values_from: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """POST the scrubbed payload, as multipart when files are attached."""
        if self.has_multipart_data():
            return await self.post_multipart_payload(properties, field_values)
        result = self.get_data_payload(properties, field_values, field_values_from)
        payload = {"data": scrub(result.data)}
        return await self._run(self._operations().save(self._target_uri(), payload))

    async def new_resource(self) -> Dict[str, Any]:
        """
        Start a create flow and fetch the new resource.

        Singletons without a create form are created straight away from
        the RDJ the backend hands back.
        """
        operations = self._operations()
        reply = await self._run(operations.new(f"{self.resource_data.resource_data_uri}?view=createForm"))

        rdj = reply.get("rdjData") or {}
        identity = rdj.get("self") or {}
        if not rdj.get("data") and identity.get("kind") == CREATABLE_OPTIONAL_SINGLETON:
            create_url = f"{self.config.backend_url}{identity.get('resourceData')}?action=create"
            reply = await self._run(operations.save(create_url, rdj.get("data") or {}))

        get_uri = (reply.get("resourceData") or {}).get("resourceData")
        if get_uri is None:
            get_uri = ((reply.get("rdjData") or {}).get("createForm") or {}).get("resourceData")
        if get_uri is None:
            raise FormEngineError("Reply does not identify the created resource")
        return await self._run(operations.get(get_uri))

    async def delete_resource(self, uri: str) -> Dict[str, Any]:
        reply = await self._run(self._operations().delete(uri))
        if self.change_session is not None:
            self.change_session.signal_modified(
                "form", "delete", ChangeState(is_lock_owner=True, has_changes=True, supports_changes=True), uri
            )
        return reply

    def _operations(self) -> DataOperations:
        if self.data_operations is None:
            raise FormEngineError("No data operations configured for this session")
        return self.data_operations

    def _target_uri(self) -> str:
        return self.rdj_url or self.resource_data.resource_data_uri

    async def _run(self, coro):
        """Track a collaborator call so dispose() can cancel it."""
        if self._disposed:
            coro.close()
            raise SessionDisposedError("Form session has been disposed")
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            logger.warning("Request cancelled before completion")
            raise
        finally:
            self._pending.discard(task)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def subscribe(self, listener: RerenderListener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _unsubscribe(self, listener: RerenderListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, direction: Direction, removed: List[RemovedField]) -> None:
        for listener in list(self._listeners):
            listener(self.page_definition, self.resource_data, direction.value, list(removed))

    def _check_alive(self) -> None:
        if self._disposed:
            raise SessionDisposedError("Form session has been disposed")

    def dispose(self) -> None:
        """Cancel in-flight requests and drop every listener."""
        self._disposed = True
        for task in list(self._pending):
            task.cancel()
        self._listeners.clear()
        self.store.uploads.clear()
