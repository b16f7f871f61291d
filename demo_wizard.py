#!/usr/bin/env python3
"""
Wizard Demo: PDJ + RDJ → live fields → navigation → payload

Shows the full workflow on the example JDBC data source wizard:
1. Analyze the page definition
2. Open a form session
3. Change gating fields and watch fields appear and disappear
4. Try to finish, fix the missing field, finish
5. Build and scrub the submission payload
"""

import json

from cfe.analyzer import analyze_page_definition
from cfe.config import EngineConfig, configure_logging
from cfe.examples import build_datasource_page_definition, build_datasource_resource_data
from cfe.paging import Mode
from cfe.session import FormSession


def show_fields(session):
    names = [prop.name for prop in session.render_properties()]
    print(f"   Fields: {', '.join(names)}")


def main():
    configure_logging(EngineConfig(log_level="WARNING"))
    pdj = build_datasource_page_definition()
    rdj = build_datasource_resource_data()

    print("=" * 80)
    print("WIZARD DEMO: PDJ → Fields → Finish → Payload")
    print("=" * 80)

    # =========================================================================
    # STEP 1: Analyze
    # =========================================================================
    print("\n1. ANALYZING PAGE DEFINITION...")
    report = analyze_page_definition(pdj)
    print(f"   ✓ Properties: {report.total_properties}")
    print(f"   ✓ Conditional sections: {report.conditional_sections}")
    print(f"   ✓ Gating fields: {report.gating_fields}")
    print(f"   ✓ Recommended mode: {report.recommended_mode.value}")

    # =========================================================================
    # STEP 2: Open session
    # =========================================================================
    print("\n2. OPENING FORM SESSION (SCROLLING)...")
    session = FormSession(pdj, rdj, mode=Mode.SCROLLING)
    show_fields(session)

    # =========================================================================
    # STEP 3: Gating fields
    # =========================================================================
    print("\n3. CHANGING GATING FIELDS...")
    result = session.value_changed("DatasourceType", "GridLink")
    print(f"   DatasourceType=GridLink added {result.added}")
    show_fields(session)
    result = session.value_changed("DatasourceType", "Generic")
    print(f"   DatasourceType=Generic removed {[entry.name for entry in result.removed]}, added {result.added}")
    result = session.value_changed("DatasourceType", "GridLink")
    show_fields(session)

    # =========================================================================
    # STEP 4: Finish
    # =========================================================================
    print("\n4. FINISHING...")
    state = session.mark_as_finished()
    print(f"   Succeeded: {state.succeeded}")
    for message in state.messages:
        print(f"      - {message.severity}: {message.detail}")
    session.value_changed("GridLinkUrl", "jdbc:oracle:thin:@//db.example.com:1521/ORCL")
    state = session.mark_as_finished()
    print(f"   Succeeded after fix: {state.succeeded}")

    # =========================================================================
    # STEP 5: Payload
    # =========================================================================
    print("\n5. PAYLOAD:")
    print("-" * 80)
    result = session.get_data_payload()
    print(json.dumps({"data": session.scrub_data_payload(result.data)}, indent=2))

    session.dispose()
    print("\n" + "=" * 80)
    print("DEMO COMPLETE!")
    print("=" * 80)


if __name__ == "__main__":
    main()
