"""
Shared fixtures for the form validator test suite.
"""

import pytest

from form_validator.tree.provider import InMemoryDocumentTree

from builders import CONTACT_FORM_HTML, FakeSupabase, make_node


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def contact_html():
    return CONTACT_FORM_HTML


@pytest.fixture
def simple_tree():
    """Form with a wrapped email field, a direct name field and a trailing sibling field."""
    nodes = [
        make_node("root", "Root", ["form1", "after"]),
        make_node("form1", "Form", ["wrap", "name"]),
        make_node("wrap", "Block", ["email"]),
        make_node("email", "TextInput", attrs={"aria-label": "Email", "required": "required"}),
        make_node("name", "TextInput", attrs={"aria-label": "Name", "required": "required"}),
        make_node("after", "TextInput", attrs={"aria-label": "Phone", "required": "required"}),
    ]
    return InMemoryDocumentTree(nodes)
