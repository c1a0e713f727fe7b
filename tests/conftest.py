"""
Root test configuration.

Test organization:
- unit/        Fast, isolated, no I/O, fake clocks and mocked dependencies
- integration/ Component boundaries, real I/O to temp locations, real threads

Run specific levels:
    pytest tests/unit -v           # Fast feedback loop
    pytest -m integration -v       # Before commit
    pytest tests -v                # Everything
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast isolated tests")
    config.addinivalue_line("markers", "integration: Component boundary tests")


def pytest_collection_modifyitems(config, items):
    """Mark each test by the directory it lives in."""
    for item in items:
        parts = Path(str(item.fspath)).parts
        if "unit" in parts:
            item.add_marker(pytest.mark.unit)
        elif "integration" in parts:
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def sample_question():
    """Standard test question."""
    return "Who owns example.com?"


@pytest.fixture
def sample_text():
    """Investigation text with two people and a company."""
    return (
        "John Doe founded Acme Corp in 2015. "
        "Jane Roe joined Acme Corp as CFO in 2019 and reports to John Doe."
    )


@pytest.fixture
def create_operation():
    """Raw extraction payload: a person, a company and one connection between them."""
    return {
        "success": True,
        "operations": [
            {
                "action": "create",
                "entities": [
                    {"type": "Person", "properties": {"full_name": "John Doe"}},
                    {"type": "Company", "properties": {"name": "Acme Corp"}},
                ],
                "connections": [{"from": 0, "to": 1, "relationship": "founded"}],
            }
        ],
    }

