"""
Integration test fixtures — workflows that span several services.

They run against the same in-memory SQLite database as the unit tests.
Mark with @pytest.mark.integration to skip in unit-only runs.

Run: pytest tests/integration/ -v -m integration
"""

from __future__ import annotations


# Custom marker for integration tests
def pytest_configure(config):
    config.addinivalue_line("markers", "integration: crosses service boundaries (tree, ledger, registry)")
