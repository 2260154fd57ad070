# tests/conftest.py
import asyncio
import sys

import pytest

from tests.fakes import InMemoryDbClient, make_template

# This is the crucial fix for Windows asyncio issues with pytest.
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def fake_db() -> InMemoryDbClient:
    return InMemoryDbClient()


@pytest.fixture
def weekly_template():
    """Weekly Mon/Wed/Fri 09:00-10:00 session assigned to u1 and u2."""
    return make_template()
