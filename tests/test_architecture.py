"""Architectural boundary tests using pytest-archon.

These tests verify that the codebase keeps its ports-and-adapters layering:
- Domain layer has no dependencies on adapters or the application layer
- The engine (application layer) only talks to ports, never to adapters
- Adapters implement ports without depending on the engine
"""

from pytest_archon import archrule


def test_domain_models_have_no_dependencies() -> None:
    """Domain models should only import the standard library, pydantic and each other."""
    (
        archrule("domain models", comment="Domain models should be independent")
        .match("portal_sync.domain.models*")
        .should_not_import("portal_sync.adapters*")
        .should_not_import("portal_sync.application*")
        .should_not_import("portal_sync.domain.contracts*")
        .should_not_import("portal_sync.domain.ports*")
        .may_import("portal_sync.domain.models*")
        .check("portal_sync")
    )


def test_domain_contracts_have_no_dependencies() -> None:
    """Domain contracts (protocols exposed to the UI) should not import adapters or application."""
    (
        archrule("domain contracts", comment="Domain contracts should be independent")
        .match("portal_sync.domain.contracts*")
        .should_not_import("portal_sync.adapters*")
        .should_not_import("portal_sync.application*")
        .may_import("portal_sync.domain.contracts*")
        .may_import("portal_sync.domain.models*")
        .may_import("portal_sync.domain.ports*")
        .check("portal_sync")
    )


def test_domain_ports_have_no_dependencies() -> None:
    """Domain ports (store, auth, lifecycle, scheduler) should not import adapters or application."""
    (
        archrule("domain ports", comment="Domain ports should be independent")
        .match("portal_sync.domain.ports*")
        .should_not_import("portal_sync.adapters*")
        .should_not_import("portal_sync.application*")
        .may_import("portal_sync.domain.ports*")
        .may_import("portal_sync.domain.models*")
        .check("portal_sync")
    )


def test_application_dont_import_adapters() -> None:
    """The engine should reach stores, timers and auth only through ports."""
    (
        archrule("application layer", comment="The engine should not depend on adapters")
        .match("portal_sync.application*")
        .should_not_import("portal_sync.adapters*")
        .should_not_import("portal_sync.main")
        .may_import("portal_sync.domain*")
        .may_import("portal_sync.application*")
        .check("portal_sync")
    )


def test_adapters_dont_import_application() -> None:
    """Adapters should not import the engine (to avoid cycles)."""
    (
        archrule("adapters independence", comment="Adapters should not depend on the engine")
        .match("portal_sync.adapters*")
        .should_not_import("portal_sync.application*")
        .may_import("portal_sync.domain*")
        .may_import("portal_sync.adapters*")
        .check("portal_sync", only_direct_imports=True)
    )


def test_no_circular_dependencies_in_domain() -> None:
    """Domain layer should not have circular dependencies."""
    (
        archrule("domain no cycles", comment="Domain layer should not have circular dependencies")
        .match("portal_sync.domain*")
        .should_not_import("portal_sync.adapters*")
        .should_not_import("portal_sync.application*")
        .may_import("portal_sync.domain*")
        .check("portal_sync", only_direct_imports=True)
    )


def test_store_adapters_dont_import_each_other() -> None:
    """The in-memory store must not depend on the Firestore adapter."""
    (
        archrule("in-memory store independence", comment="In-memory store stays dependency free")
        .match("portal_sync.adapters.store.in_memory_store")
        .should_not_import("portal_sync.adapters.store.firestore_rest_store")
        .may_import("portal_sync.domain*")
        .check("portal_sync", only_direct_imports=True)
    )
