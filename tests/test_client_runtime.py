"""
Tests for the client validation runtime and its validators.
"""

import pytest

from form_validator.rules.annotations import EMAIL_PATTERN, PHONE_PATTERN
from form_validator.runtime.client_runtime import (
    ClientValidationRuntime,
    FieldState,
    SubmitOutcome,
)
from form_validator.runtime.dom import RuntimeDom
from form_validator.runtime.validators import (
    first_failure,
    is_valid_email,
    is_valid_phone,
    is_valid_url,
    matches_pattern,
    rules_from_attributes,
)

ANNOTATED_HTML = r"""
<form id="contact">
  <label for="email">Work Email</label>
  <input id="email" name="email" type="email" required="required"
         pattern="[^\s@]+@[^\s@]+\.[^\s@]+"
         data-error-id="work-email-error" data-field-label="work-email"
         data-auto-error-messaging="true">
  <label for="full-name">Full Name</label>
  <input id="full-name" name="full_name" required="required"
         data-error-id="full-name-error" data-field-label="full-name"
         data-auto-error-messaging="true">
  <input id="nickname" name="nickname">
  <button type="submit">Send</button>
</form>
"""


@pytest.fixture
def runtime():
    rt = ClientValidationRuntime(RuntimeDom.from_html(ANNOTATED_HTML))
    rt.initialize()
    return rt


def _error_text(rt, error_id):
    element = rt.dom.get_element_by_id(error_id)
    return element.get_text() if element is not None else None


def test_initialize_registers_only_annotated_fields(runtime):
    assert sorted(runtime.fields) == ["email", "full-name"]
    assert runtime.form_fields["contact"] == ["email", "full-name"]


def test_invalid_email_round_trip(runtime):
    field = runtime.fields["email"].element

    runtime.handle_focus("email")
    runtime.handle_input("email", "not-an-email")
    assert runtime.handle_blur("email") == FieldState.INVALID
    assert field["aria-invalid"] == "true"
    assert field["aria-describedby"] == "work-email-error"
    assert _error_text(runtime, "work-email-error") == (
        "Work Email must be a valid email address (name@company.com)"
    )
    error = runtime.dom.get_element_by_id("work-email-error")
    assert error["role"] == "alert"
    assert error.find_previous_sibling("input")["id"] == "email"

    runtime.handle_focus("email")
    runtime.handle_input("email", "jane@example.com")
    assert runtime.handle_blur("email") == FieldState.VALID
    assert not field.has_attr("aria-invalid")
    assert not field.has_attr("aria-describedby")
    assert _error_text(runtime, "work-email-error") == ""


def test_required_message_uses_visible_label(runtime):
    runtime.handle_focus("full-name")
    assert runtime.handle_blur("full-name") == FieldState.INVALID
    assert _error_text(runtime, "full-name-error") == "Full Name is required"


def test_input_clears_error_eagerly(runtime):
    runtime.handle_focus("email")
    runtime.handle_blur("email")
    assert runtime.state_of("email") == FieldState.INVALID

    assert runtime.handle_input("email", "j") == FieldState.TOUCHED
    assert not runtime.fields["email"].element.has_attr("aria-invalid")
    assert _error_text(runtime, "work-email-error") == ""


def test_blur_on_pristine_field_does_not_validate(runtime):
    assert runtime.handle_blur("email") == FieldState.PRISTINE
    assert runtime.dom.get_element_by_id("work-email-error") is None


def test_error_element_is_reused(runtime):
    runtime.handle_focus("email")
    runtime.handle_blur("email")
    runtime.handle_focus("email")
    runtime.handle_blur("email")
    assert len(runtime.dom.soup.find_all(id="work-email-error")) == 1


def test_submit_prevented_and_focus_moves_to_first_invalid(runtime):
    runtime.handle_input("full-name", "Jane Doe")
    assert runtime.handle_submit("contact") == SubmitOutcome.PREVENTED
    assert runtime.focused == "email"
    assert runtime.state_of("full-name") == FieldState.VALID
    assert runtime.submissions.get("contact", 0) == 0


def test_submit_proceeds_exactly_once_despite_programmatic_resubmit():
    nested = []

    def resubmit(form):
        nested.append(rt.handle_submit(form))

    rt = ClientValidationRuntime(RuntimeDom.from_html(ANNOTATED_HTML), on_submit=resubmit)
    rt.initialize()
    rt.handle_input("email", "jane@example.com")
    rt.handle_input("full-name", "Jane Doe")

    assert rt.handle_submit("contact") == SubmitOutcome.SUBMITTED
    assert nested == [SubmitOutcome.IGNORED]
    assert rt.submissions["contact"] == 1


def test_custom_error_message_overrides_template():
    html = (
        '<form id="f"><input id="e" type="email" data-error-id="e-error" '
        'data-error-email="Use your work address" data-auto-error-messaging="true"></form>'
    )
    rt = ClientValidationRuntime(RuntimeDom.from_html(html))
    rt.initialize()
    rt.handle_input("e", "nope")
    assert rt.validate_field("e") is False
    assert rt.fields["e"].error == "Use your work address"


def test_optional_empty_field_skips_format_rules():
    html = '<form id="f"><input id="u" type="url" data-auto-error-messaging="true"></form>'
    rt = ClientValidationRuntime(RuntimeDom.from_html(html))
    rt.initialize()
    assert rt.validate_field("u") is True


@pytest.mark.parametrize(
    "value,ok",
    [
        ("(555) 123-4567", True),
        ("+1 555 123 4567", True),
        ("555.123.4567", True),
        ("+44 20 7946 0958", True),
        ("12345", False),
        ("0123456789", False),
        ("+1234567890123456", False),
        ("555-CALL-NOW", False),
    ],
)
def test_canonical_phone_rule(value, ok):
    assert is_valid_phone(value) is ok


@pytest.mark.parametrize(
    "value,ok",
    [
        ("jane@example.com", True),
        ("jane@example", False),
        ("jane @example.com", False),
        ("@x.io", False),
        ("jane@example.com\n", False),
    ],
)
def test_email_rule(value, ok):
    assert is_valid_email(value) is ok


@pytest.mark.parametrize(
    "value,ok",
    [
        ("https://www.example.com", True),
        ("http://a.b/c?d=1", True),
        ("ftp://x.org", True),
        ("mailto:jane@example.com", True),
        ("urn:isbn:0451450523", True),
        ("example.com", False),
        ("http://", False),
        ("https://exa mple.com", False),
    ],
)
def test_url_rule(value, ok):
    assert is_valid_url(value) is ok


def test_pattern_is_anchored_and_invalid_pattern_passes():
    assert matches_pattern("abc", "[a-z]+") is True
    assert matches_pattern("abc1", "[a-z]+") is False
    assert matches_pattern("anything", "([") is True


@pytest.mark.parametrize(
    "value",
    [
        "(555) 123-4567",
        "+1 555 123 4567",
        "555.123.4567",
        "+44 20 7946 0958",
        " 5551234567 ",
        "----------",
        "0123456789",
        "++++++++++",
        "+1234567890123456",
        "555-CALL-NOW",
        "12345",
        "1-+5551234567",
    ],
)
def test_annotated_phone_pattern_agrees_with_runtime_rule(value):
    assert matches_pattern(value, PHONE_PATTERN) is is_valid_phone(value)


@pytest.mark.parametrize("value", ["jane@example.com", "jane@example", "a b@c.de", "x@y.z"])
def test_annotated_email_pattern_agrees_with_runtime_rule(value):
    assert matches_pattern(value, EMAIL_PATTERN) is is_valid_email(value)


def test_rules_follow_declared_attributes_in_order():
    attrs = {"required": "", "type": "tel", "minlength": "3", "data-max-length": "20", "data-pattern": r"\d+"}
    rules = rules_from_attributes(attrs, "Phone")
    assert [r.name for r in rules] == ["required", "phone", "minlength", "maxlength", "pattern"]
    assert first_failure(rules, "").message == "Phone is required"
    assert first_failure(rules, "abc").name == "phone"


def test_length_messages():
    rules = rules_from_attributes({"minlength": "5", "maxlength": "6"}, "Code")
    assert first_failure(rules, "abc").message == "Code must be at least 5 characters long"
    assert first_failure(rules, "abcdefg").message == "Code must be no more than 6 characters long"
    assert first_failure(rules, "abcde") is None
