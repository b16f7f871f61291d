"""
Conditional Form Engine (CFE) Package

Derives the live set of form fields for a create/edit flow from a
declarative page definition (PDJ) plus resource data (RDJ): which fields
exist, their values and flags, wizard pagination, and the submission
payload.

ARCHITECTURAL GUARANTEE:
------------------------
This package contains ZERO knowledge of:
    - HTTP transport (handed in as a DataOperations collaborator)
    - Rendering, widgets or data binding
    - Localization of messages

It computes the *set and state* of fields only.
"""

__version__ = "0.1.0"
