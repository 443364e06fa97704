"""
Shared fixtures for simulator tests.
"""

import pytest

from convosim.core.flow.models import FlowGraph
from convosim.core.registries import RegistryManager
from convosim.io.loaders import load_flows, load_lenses
from factories import KB_FLOWS, KB_LENSES, build_contact_flow


@pytest.fixture
def contact_flow() -> FlowGraph:
    return build_contact_flow()


@pytest.fixture(scope="module")
def kb_registries() -> RegistryManager:
    """Load the bundled knowledge base once per module."""
    rm = RegistryManager()
    rm.register_defaults()
    load_lenses(KB_LENSES, rm)
    load_flows(KB_FLOWS, rm)
    return rm
