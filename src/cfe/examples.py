"""
Example page definitions for demos and tests.

    build_datasource_page_definition()
        JDBC data source wizard: DatasourceType gates GridLink or Generic
        sections; GridLink's FanEnabled gates a third level; the Generic
        branch duplicates connection fields per database driver.

    build_deployment_page_definition()
        Application deployment: Upload gates either file parts
        (Source, Plan) or a server-side SourcePath.
"""
from cfe.model import (
    CREATABLE_OPTIONAL_SINGLETON,
    CreateForm,
    PageDefinition,
    ResourceData,
    SchemaProperty,
    Section,
)
from cfe.predicates import UsedIf


def build_datasource_page_definition(with_fan: bool = True) -> PageDefinition:
    gridlink_sections = ()
    if with_fan:
        gridlink_sections = (
            Section(
                name="FAN",
                used_if=UsedIf("FanEnabled", (True,)),
                properties=(
                    SchemaProperty("OnsNodeList", label="ONS Nodes", required=True),
                ),
            ),
        )

    general = Section(
        name="General",
        properties=(
            SchemaProperty("Name", label="Name"),
            SchemaProperty("DatasourceType", label="Data Source Type"),
        ),
    )
    gridlink = Section(
        name="GridLink",
        used_if=UsedIf("DatasourceType", ("GridLink",)),
        properties=(
            SchemaProperty("GridLinkUrl", label="GridLink URL", required=True),
            SchemaProperty("FanEnabled", label="Fan Enabled", type="boolean"),
        ),
        sections=gridlink_sections,
    )
    generic = Section(
        name="Generic",
        used_if=UsedIf("DatasourceType", ("Generic",)),
        properties=(
            SchemaProperty("DatabaseDriver", label="Database Driver"),
        ),
        sections=(
            Section(
                name="Oracle",
                used_if=UsedIf("DatabaseDriver", ("Oracle",)),
                properties=(
                    SchemaProperty("Connection_COLON_Oracle_DbmsUser", label="Database User Name"),
                    SchemaProperty("Connection_COLON_Oracle_DbmsPort", label="Port", type="int"),
                ),
            ),
            Section(
                name="MySQL",
                used_if=UsedIf("DatabaseDriver", ("MySQL",)),
                properties=(
                    SchemaProperty("Connection_COLON_MySQL_DbmsUser", label="Database User Name"),
                    SchemaProperty("Connection_COLON_MySQL_DbmsPort", label="Port", type="int"),
                ),
            ),
        ),
    )

    return PageDefinition(
        help_page_title="New JDBC Data Source",
        introduction_html="<p>Create a new JDBC data source.</p>",
        create_form=CreateForm(sections=(general, gridlink, generic)),
    )


def build_datasource_resource_data() -> ResourceData:
    return ResourceData(
        data={
            "Name": {"value": "JDBCDataSource-0"},
            "DatasourceType": {"value": "Generic"},
            "GridLinkUrl": {"value": None},
            "FanEnabled": {"value": False},
            "OnsNodeList": {"value": None},
            "DatabaseDriver": {"value": None},
            "Connection_COLON_Oracle_DbmsUser": {"value": None},
            "Connection_COLON_Oracle_DbmsPort": {"value": 1521},
            "Connection_COLON_MySQL_DbmsUser": {"value": None},
            "Connection_COLON_MySQL_DbmsPort": {"value": 3306},
        },
        self_info={
            "kind": "collection",
            "resourceData": "/api/domain/edit/JDBCSystemResources",
        },
    )


def build_deployment_page_definition() -> PageDefinition:
    deployment = Section(
        name="Deployment",
        properties=(
            SchemaProperty("Name", label="Name", required=True),
            SchemaProperty("Upload", label="Upload", type="boolean"),
            SchemaProperty("Targets", label="Targets", type="reference", array=True),
            SchemaProperty("PlanPath", label="Plan Path"),
        ),
    )
    upload = Section(
        name="Upload",
        used_if=UsedIf("Upload", (True,)),
        properties=(
            SchemaProperty("Source", label="Source", type="fileContents", required=True),
            SchemaProperty("Plan", label="Plan", type="fileContents"),
        ),
    )
    server_side = Section(
        name="ServerSide",
        used_if=UsedIf("Upload", (False,)),
        properties=(
            SchemaProperty("SourcePath", label="Source Path", required=True),
        ),
    )
    return PageDefinition(
        help_page_title="New Application Deployment",
        create_form=CreateForm(sections=(deployment, upload, server_side)),
    )


def build_deployment_resource_data() -> ResourceData:
    return ResourceData(
        data={
            "Name": {"value": None},
            "Upload": {"value": False},
            "Targets": {"value": []},
            "PlanPath": {"value": None},
            "Source": {"value": None},
            "Plan": {"value": None},
            "SourcePath": {"value": None},
        },
        self_info={
            "kind": "collection",
            "resourceData": "/api/domain/edit/AppDeployments",
        },
    )


def build_singleton_resource_data() -> ResourceData:
    """RDJ for a resource that may be created without any create form."""
    return ResourceData(
        data={},
        self_info={
            "kind": CREATABLE_OPTIONAL_SINGLETON,
            "resourceData": "/api/domain/edit/SecurityConfiguration/Realms/myrealm/Adjudicator",
        },
    )
