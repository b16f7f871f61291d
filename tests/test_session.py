"""
Tests for the Form Session.

These tests drive whole create flows:
    - Schema checks at construction
    - Field changes through the resolver, paging and listeners
    - Finish validation
    - Payload, scrub and submit (JSON and multipart)
    - new/delete resource flows and cancellation on dispose
"""

import asyncio
import json

import pytest

from cfe.changes import ChangeSession
from cfe.config import EngineConfig
from cfe.examples import (
    build_datasource_page_definition,
    build_datasource_resource_data,
    build_deployment_page_definition,
    build_deployment_resource_data,
    build_singleton_resource_data,
)
from cfe.model import (
    CREATABLE_OPTIONAL_SINGLETON,
    CreateForm,
    FormEngineError,
    PageDefinition,
    ResourceData,
    SchemaProperty,
    Section,
    UploadedFile,
)
from cfe.operations import MultipartRequest
from cfe.paging import Direction, Mode
from cfe.predicates import UsedIf
from cfe.session import FormSession, SchemaViolationError, SessionDisposedError


class FakeDataOperations:
    """Records calls; replies come from a dict keyed by method name."""

    def __init__(self, replies=None, block=None):
        self.replies = replies or {}
        self.calls = []
        self.block = block

    async def _reply(self, method, *args):
        self.calls.append((method,) + args)
        if self.block is not None:
            await self.block.wait()
        reply = self.replies.get(method, {})
        if isinstance(reply, list):
            return reply.pop(0)
        return reply

    async def get(self, uri):
        return await self._reply("get", uri)

    async def new(self, uri):
        return await self._reply("new", uri)

    async def save(self, uri, payload):
        return await self._reply("save", uri, payload)

    async def delete(self, uri):
        return await self._reply("delete", uri)

    async def upload(self, uri, request):
        return await self._reply("upload", uri, request)


def _datasource(mode=Mode.SCROLLING, **kwargs):
    return FormSession(
        build_datasource_page_definition(),
        build_datasource_resource_data(),
        mode=mode,
        **kwargs,
    )


def _deployment(**kwargs):
    return FormSession(build_deployment_page_definition(), build_deployment_resource_data(), **kwargs)


def _names(props):
    return [p.name for p in props]


class TestConstruction:
    """Test schema checks and initial state."""

    def test_missing_create_form_rejected(self):
        with pytest.raises(SchemaViolationError):
            FormSession(PageDefinition(), ResourceData(self_info={"kind": "collection"}))

    def test_singleton_allowed(self):
        """Should accept a creatable optional singleton without a create form."""
        session = FormSession(PageDefinition(), build_singleton_resource_data())
        assert not session.is_wizard()
        assert session.render_properties() == []

    def test_wizard_base_fields(self):
        session = _datasource()
        assert session.is_wizard()
        assert _names(session.render_properties()) == ["Name", "DatasourceType"]
        assert session.get_attribute_type("Name") == "normal"
        assert session.get_attribute_type("DatasourceType") == "conditional"
        assert session.get_attribute_default("Name") == "JDBCDataSource-0"

    def test_mode_from_schema(self):
        """Should derive the mode when neither caller nor config picks one."""
        assert _datasource(mode=None).mode == Mode.PAGING
        assert _deployment().mode == Mode.SCROLLING

    def test_mode_from_config(self):
        session = _deployment(config=EngineConfig(default_mode=Mode.PAGING))
        assert session.mode == Mode.PAGING

    def test_undeclared_gate_warns(self):
        form = CreateForm(sections=(
            Section(properties=(SchemaProperty("A"),)),
            Section(used_if=UsedIf("Ghost", ("x",)), properties=(SchemaProperty("B"),)),
        ))
        with pytest.warns(UserWarning, match="Ghost"):
            FormSession(PageDefinition(create_form=form), ResourceData())

    def test_flat_form(self):
        form = CreateForm(properties=(SchemaProperty("Name"),))
        session = FormSession(PageDefinition(create_form=form), ResourceData())
        assert not session.is_wizard()
        assert _names(session.render_properties()) == ["Name"]
        assert session.can_finish


class TestValueChanged:
    """Test field changes through the session."""

    def test_gate_adds_fields(self):
        session = _datasource()
        result = session.value_changed("DatasourceType", "GridLink")
        assert result.added == ["GridLinkUrl", "FanEnabled"]
        assert _names(session.render_properties()) == ["Name", "DatasourceType", "GridLinkUrl", "FanEnabled"]

    def test_chain_removed(self):
        """Should drop A -> B -> C dependents from the store and the page."""
        session = _datasource()
        session.value_changed("DatasourceType", "GridLink")
        session.value_changed("FanEnabled", True)
        assert "OnsNodeList" in _names(session.render_properties())

        result = session.value_changed("DatasourceType", "Generic")

        assert [r.name for r in result.removed] == ["GridLinkUrl", "FanEnabled", "OnsNodeList"]
        assert _names(session.render_properties()) == ["Name", "DatasourceType", "DatabaseDriver"]
        assert session.get_attribute_data("OnsNodeList") is None

    def test_plain_field_changes_nothing_else(self):
        """Should never add or remove others for a field with no dependents."""
        session = _datasource()
        seen = []
        session.subscribe(lambda *args: seen.append(args))

        result = session.value_changed("Name", "ds-2")

        assert not result.changed
        assert session.get_attribute_value("Name") == "ds-2"
        assert seen == []

    def test_same_value_no_rerender(self):
        session = _datasource()
        session.value_changed("DatasourceType", "GridLink")
        seen = []
        session.subscribe(lambda *args: seen.append(args))

        assert not session.value_changed("DatasourceType", "GridLink").changed
        assert seen == []

    def test_listener_receives_removed(self):
        pdj = build_datasource_page_definition()
        seen = []
        session = FormSession(pdj, build_datasource_resource_data(), mode=Mode.SCROLLING,
                              on_rerender=lambda *args: seen.append(args))
        session.value_changed("DatasourceType", "GridLink")
        session.value_changed("DatasourceType", "Generic")

        assert len(seen) == 2
        page_definition, resource_data, direction, removed = seen[1]
        assert page_definition is pdj
        assert direction == "next"
        assert [r.name for r in removed] == ["GridLinkUrl", "FanEnabled"]

    def test_unsubscribe(self):
        session = _datasource()
        seen = []
        subscription = session.subscribe(lambda *args: seen.append(args))
        subscription.unsubscribe()
        session.value_changed("DatasourceType", "GridLink")
        assert seen == []

    def test_empty_string_is_unset(self):
        session = _datasource()
        session.value_changed("Name", "")
        assert session.get_attribute_value("Name") is None

    def test_stale_grouped_key_updates_members(self):
        """Should write every stored key sharing the member of an unknown grouped key."""
        session = _datasource()
        session.value_changed("DatasourceType", "Generic")
        session.value_changed("DatabaseDriver", "MySQL")
        seen = []
        session.subscribe(lambda *args: seen.append(args))

        session.value_changed("Connection_COLON_Oracle_DbmsUser", "scott")

        assert session.get_attribute_value("Connection_COLON_MySQL_DbmsUser") == "scott"
        assert session.get_attribute_value("Connection_COLON_MySQL_DbmsPort") is None
        assert len(seen) == 1

    def test_attribute_accessors(self):
        session = _datasource()
        session.value_changed("DatasourceType", "GridLink")
        assert session.is_required_attribute("GridLinkUrl")
        assert session.get_attribute_visible("GridLinkUrl")
        assert not session.get_attribute_disabled("GridLinkUrl")
        assert session.get_attribute_replacer("Connection_COLON_MySQL_DbmsUser") == "DbmsUser"
        assert session.is_required_attribute("Nope") is None
        assert session.snapshot()["GridLinkUrl"]["type"] == "normal"


class TestPagingSession:
    """Test wizard navigation in PAGING mode."""

    def test_walk_forward_and_back(self):
        session = _datasource(mode=Mode.PAGING)
        session.value_changed("DatasourceType", "GridLink")
        assert session.can_next
        assert not session.can_finish

        result = session.next()

        assert result.succeeded
        assert result.can_back
        assert _names(session.render_properties()) == ["GridLinkUrl", "FanEnabled"]

        session.value_changed("FanEnabled", True)
        session.next()
        assert _names(session.render_properties()) == ["OnsNodeList"]

        session.back()
        session.back()
        assert _names(session.render_properties()) == ["Name", "DatasourceType"]

    def test_removal_resets_forward_pages(self):
        """Should drop cached pages made stale by a removal."""
        session = _datasource(mode=Mode.PAGING)
        session.value_changed("DatasourceType", "GridLink")
        session.next()
        session.back()

        session.value_changed("DatasourceType", "Generic")

        assert session.paging.pages == [["Name", "DatasourceType"]]
        assert session.can_next
        session.next()
        assert _names(session.render_properties()) == ["DatabaseDriver"]

    def test_navigation_refused(self):
        session = _datasource(mode=Mode.PAGING)
        result = session.rerender_page(Direction.BACK)
        assert not result.succeeded
        assert result.can_finish


class TestFinish:
    """Test required-field validation."""

    def test_blocked_then_succeeds(self):
        session = _datasource()
        session.value_changed("DatasourceType", "GridLink")

        state = session.mark_as_finished()

        assert not state.succeeded
        assert [m.detail for m in state.messages] == ["GridLink URL is required."]
        assert state.summary == "Required fields are incomplete."
        assert state.auto_close_interval_ms == 1500
        assert not session.finished

        session.value_changed("GridLinkUrl", "jdbc:oracle:thin:@//db:1521/ORCL")
        state = session.mark_as_finished()

        assert state.succeeded
        assert session.finished
        assert not session.can_finish

    def test_messages_in_declaration_order(self):
        session = _deployment()
        session.value_changed("Upload", True)
        state = session.has_incomplete_required_attributes()
        assert [m.detail for m in state.messages] == ["Name is required.", "Source is required."]

    def test_hidden_fields_skipped(self):
        session = _deployment()
        session.value_changed("Upload", True)
        session.store.get("Source").visible = False
        state = session.has_incomplete_required_attributes()
        assert [m.detail for m in state.messages] == ["Name is required."]

    def test_paging_scope(self):
        """Should validate only pages reached so far plus pending fields."""
        session = _datasource(mode=Mode.PAGING)
        session.value_changed("DatasourceType", "GridLink")
        session.next()
        session.value_changed("FanEnabled", True)
        session.next()
        session.back()

        state = session.has_incomplete_required_attributes()

        assert [m.detail for m in state.messages] == ["GridLink URL is required."]

    def test_finished_stays_terminal(self):
        """Should stay finished when a later change removes fields."""
        session = _datasource(mode=Mode.PAGING)
        session.value_changed("DatasourceType", "Generic")
        session.next()
        assert session.mark_as_finished().succeeded
        session.back()  # refused once finished
        session.value_changed("DatasourceType", "GridLink")
        assert session.finished
        assert not session.can_next
        assert not session.can_finish

    def test_scrolling_finish_stays_terminal(self):
        session = _datasource()
        session.value_changed("DatasourceType", "GridLink")
        session.value_changed("GridLinkUrl", "jdbc:x")
        assert session.mark_as_finished().succeeded

        session.value_changed("DatasourceType", "Generic")

        assert session.finished
        assert not session.can_finish


class TestPayload:
    """Test building and scrubbing submission data."""

    def test_defaults_round_trip(self):
        """Should submit the RDJ defaults when nothing was edited."""
        session = _datasource()
        session.value_changed("DatasourceType", "Generic")
        session.value_changed("DatabaseDriver", "Oracle")

        data = session.get_data_payload().data

        assert data["Name"] == {"value": "JDBCDataSource-0"}
        assert data["Connection_COLON_Oracle_DbmsPort"] == {"value": 1521}
        assert data["Connection_COLON_Oracle_DbmsUser"] == {"value": ""}

    def test_value_carried_across_instances(self):
        session = _datasource()
        session.value_changed("DatasourceType", "Generic")
        session.value_changed("DatabaseDriver", "Oracle")
        session.value_changed("Connection_COLON_Oracle_DbmsUser", "scott")
        session.value_changed("DatabaseDriver", "MySQL")

        data = session.get_data_payload().data

        assert data["Connection_COLON_MySQL_DbmsUser"] == {"value": "scott"}
        assert "Connection_COLON_Oracle_DbmsUser" not in data

    def test_flat_form_uses_field_values(self):
        form = CreateForm(properties=(SchemaProperty("Name"), SchemaProperty("Port", type="int")))
        session = FormSession(PageDefinition(create_form=form), ResourceData())
        data = session.get_data_payload(field_values={"Name": "x", "Port": "7"}).data
        assert data == {"Name": {"value": "x"}, "Port": {"value": 7}}

    def test_scrub_is_idempotent(self):
        session = _deployment()
        data = session.get_data_payload().data
        once = session.scrub_data_payload(data)
        assert "Upload" not in once
        assert session.scrub_data_payload(once) == once

    def test_deployment_flags(self):
        session = _deployment()
        assert not session.has_deployment_path_data()
        session.value_changed("Upload", False)
        assert session.has_deployment_path_data()
        assert not session.has_multipart_data()


class TestSubmit:
    """Test posting through the data operations collaborator."""

    def test_json_submit(self):
        ops = FakeDataOperations({"save": {"messages": []}})
        session = _datasource(data_operations=ops)
        session.value_changed("DatasourceType", "GridLink")
        session.value_changed("GridLinkUrl", "jdbc:x")

        asyncio.run(session.submit())

        method, uri, payload = ops.calls[0]
        assert method == "save"
        assert uri == "/api/domain/edit/JDBCSystemResources"
        assert payload["data"]["GridLinkUrl"] == {"value": "jdbc:x"}
        assert "FanEnabled" in payload["data"]

    def test_rdj_url_overrides_target(self):
        ops = FakeDataOperations()
        session = _datasource(data_operations=ops, rdj_url="/api/custom")
        asyncio.run(session.submit())
        assert ops.calls[0][1] == "/api/custom"

    def test_multipart_submit(self):
        """Should send picked files as parts and the rest as requestBody."""
        ops = FakeDataOperations()
        session = _deployment(data_operations=ops)
        session.value_changed("Name", "app")
        session.value_changed("Upload", True)
        session.add_uploaded_file("Source", UploadedFile("app.war", b"PK"))
        assert session.has_multipart_data()

        asyncio.run(session.submit())

        method, uri, request = ops.calls[0]
        assert method == "upload"
        assert uri == "/api/domain/edit/AppDeployments"
        assert isinstance(request, MultipartRequest)
        assert request.names() == ["Source", "requestBody"]
        body = json.loads(request.get("requestBody").content.decode("utf-8"))
        assert body["data"]["Name"] == {"value": "app"}
        assert "Upload" not in body["data"]
        assert "Source" not in body["data"]

    def test_clear_upload(self):
        session = _deployment()
        session.value_changed("Upload", True)
        session.add_uploaded_file("Source", UploadedFile("app.war", b"PK"))
        session.clear_uploaded_file("Source")
        assert not session.has_multipart_data()

    def test_upload_dropped_with_field(self):
        session = _deployment()
        session.value_changed("Upload", True)
        session.add_uploaded_file("Source", UploadedFile("app.war", b"PK"))
        session.value_changed("Upload", False)
        assert not session.has_multipart_data()

    def test_no_operations(self):
        with pytest.raises(FormEngineError):
            asyncio.run(_datasource().submit())


class TestResourceFlows:
    """Test new/delete flows."""

    def test_new_resource(self):
        ops = FakeDataOperations({
            "new": {"resourceData": {"resourceData": "/api/domain/edit/JDBCSystemResources/ds-1"}},
            "get": {"data": {"Name": {"value": "ds-1"}}},
        })
        session = _datasource(data_operations=ops)

        reply = asyncio.run(session.new_resource())

        assert ops.calls == [
            ("new", "/api/domain/edit/JDBCSystemResources?view=createForm"),
            ("get", "/api/domain/edit/JDBCSystemResources/ds-1"),
        ]
        assert reply == {"data": {"Name": {"value": "ds-1"}}}

    def test_new_singleton_is_created(self):
        """Should create a singleton straight away when the reply has no data."""
        uri = "/api/domain/edit/SecurityConfiguration/Realms/myrealm/Adjudicator"
        ops = FakeDataOperations({
            "new": {"rdjData": {"self": {"kind": CREATABLE_OPTIONAL_SINGLETON, "resourceData": uri}}},
            "save": {"resourceData": {"resourceData": uri}},
        })
        session = FormSession(
            PageDefinition(), build_singleton_resource_data(),
            data_operations=ops, config=EngineConfig(backend_url="http://localhost:8012"),
        )

        asyncio.run(session.new_resource())

        assert [call[0] for call in ops.calls] == ["new", "save", "get"]
        assert ops.calls[1][1] == f"http://localhost:8012{uri}?action=create"
        assert ops.calls[2] == ("get", uri)

    def test_new_resource_without_identity(self):
        ops = FakeDataOperations({"new": {}})
        with pytest.raises(FormEngineError):
            asyncio.run(_datasource(data_operations=ops).new_resource())

    def test_delete_signals_change_session(self):
        ops = FakeDataOperations()
        changes = ChangeSession("weblogic")
        seen = []
        changes.subscribe(lambda *args: seen.append(args))
        session = _datasource(data_operations=ops, change_session=changes)

        asyncio.run(session.delete_resource("/api/domain/edit/JDBCSystemResources/ds-1"))

        source, action, state, uri = seen[0]
        assert (source, action) == ("form", "delete")
        assert state.is_lock_owner and state.has_changes and state.supports_changes
        assert uri == "/api/domain/edit/JDBCSystemResources/ds-1"
        assert changes.most_recent.has_changes


class TestDispose:
    """Test session teardown."""

    def test_dispose_cancels_in_flight(self):
        async def scenario():
            ops = FakeDataOperations(block=asyncio.Event())
            session = _datasource(data_operations=ops)
            task = asyncio.ensure_future(session.submit())
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            session.dispose()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

    def test_use_after_dispose(self):
        session = _datasource(data_operations=FakeDataOperations())
        session.dispose()
        with pytest.raises(SessionDisposedError):
            session.value_changed("Name", "x")
        with pytest.raises(SessionDisposedError):
            asyncio.run(session.submit())

    def test_dispose_drops_listeners_and_uploads(self):
        session = _deployment()
        session.subscribe(lambda *args: None)
        session.value_changed("Upload", True)
        session.add_uploaded_file("Source", UploadedFile("app.war", b"PK"))
        session.dispose()
        assert session._listeners == []
        assert not session.has_multipart_data()


def test_upload_default_without_record():
    """Should fall back to RDJ for Upload when the store has no record."""
    session = FormSession(
        PageDefinition(create_form=CreateForm(properties=(SchemaProperty("Upload", type="boolean"),))),
        ResourceData(data={"Upload": {"value": True}}),
    )
    assert session.get_attribute_default("Upload") is True
    assert session.get_attribute_default("Other") is None
