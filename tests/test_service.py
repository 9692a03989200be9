"""
Scenario tests for form_validator.service.FormValidationService.

This module tests:
- scan / apply_validation / remove_validation against static markup
- Plan limit enforcement
- Compensating rollback when persistence fails
- Per-field failures and total tree unavailability
"""

import pytest

from form_validator.analyzer.field_classifier import FieldType
from form_validator.models import ValidationStatus
from form_validator.service import FormValidationService
from form_validator.services.config_service import LimitsContext, StaticConfigService
from form_validator.services.persistence import InMemoryStatePersistence
from form_validator.tree.markup_provider import MarkupDocumentTree
from form_validator.tree.provider import InMemoryDocumentTree
from form_validator.utils.error_handler import DocumentTreeUnavailable

from builders import make_node

TWO_FORMS_HTML = """
<body>
<form id="first"><input id="a-email" aria-label="Email" required></form>
<form id="second"><input id="b-email" aria-label="Email" required></form>
</body>
"""


def _service(provider, persistence=None, limits=None, plan_tier="free"):
    config_service = StaticConfigService(limits) if limits is not None else None
    return FormValidationService(
        provider,
        persistence=persistence if persistence is not None else InMemoryStatePersistence(),
        config_service=config_service,
        plan_tier=plan_tier,
        limits_context=LimitsContext(),
    )


@pytest.mark.asyncio
async def test_scan_keeps_required_supported_fields(contact_html):
    provider = MarkupDocumentTree(contact_html)
    result = await _service(provider).scan()

    assert len(result.forms) == 1
    form = result.forms[0]
    assert form.node_id == "contact"
    assert form.name == "contact"
    assert [(f.label, f.field_type) for f in form.fields] == [
        ("Full Name", FieldType.PLAIN),
        ("Work Email", FieldType.EMAIL),
    ]
    assert result.has_existing_validations == {"contact": False}


@pytest.mark.asyncio
async def test_scan_is_side_effect_free(contact_html):
    provider = MarkupDocumentTree(contact_html)
    before = provider.render()
    await _service(provider).scan()
    assert provider.render() == before


@pytest.mark.asyncio
async def test_apply_sets_email_type_only_on_email_field(contact_html):
    provider = MarkupDocumentTree(contact_html)
    service = _service(provider)
    form = (await service.scan()).forms[0]

    result = await service.apply_validation(form)

    assert result.succeeded == 2
    assert result.failed == 0
    assert not result.rolled_back
    email = await provider.get_attributes("work-email")
    name = await provider.get_attributes("full-name")
    comments = await provider.get_attributes("comments")
    assert email["type"] == "email"
    assert email["data-error-id"] == "work-email-error"
    assert name["type"] == "text"
    assert "pattern" not in name
    assert "data-error-id" not in comments
    assert (await provider.get_attribute("contact", "data-a11y-validator")) == "enabled"


@pytest.mark.asyncio
async def test_apply_then_scan_reports_existing_validation(contact_html):
    provider = MarkupDocumentTree(contact_html)
    persistence = InMemoryStatePersistence()
    service = _service(provider, persistence)
    form = (await service.scan()).forms[0]
    await service.apply_validation(form)

    rescan = await service.scan()
    assert rescan.has_existing_validations == {"contact": True}
    assert persistence.records["contact"].status == ValidationStatus.APPLIED
    assert persistence.records["contact"].has_validation is True


@pytest.mark.asyncio
async def test_remove_then_scan_reports_no_existing_validation(contact_html):
    provider = MarkupDocumentTree(contact_html)
    persistence = InMemoryStatePersistence()
    service = _service(provider, persistence)
    form = (await service.scan()).forms[0]
    await service.apply_validation(form)

    await service.remove_validation(form)
    rescan = await service.scan()

    assert rescan.has_existing_validations == {"contact": False}
    assert len(rescan.forms[0].fields) == 2
    assert persistence.records["contact"].status == ValidationStatus.REMOVED
    rendered = provider.render()
    assert "data-a11y-validator" not in rendered
    assert "data-error-id" not in rendered


@pytest.mark.asyncio
async def test_remove_is_idempotent(contact_html):
    provider = MarkupDocumentTree(contact_html)
    service = _service(provider)
    form = (await service.scan()).forms[0]
    before = provider.render()

    await service.remove_validation(form)
    await service.remove_validation(form)

    assert provider.render() == before


@pytest.mark.asyncio
async def test_persistence_failure_rolls_back_annotations(contact_html):
    provider = MarkupDocumentTree(contact_html)
    persistence = InMemoryStatePersistence()
    service = _service(provider, persistence)
    form = (await service.scan()).forms[0]
    before = provider.render()

    persistence.fail_puts = True
    result = await service.apply_validation(form)

    assert result.rolled_back is True
    assert result.succeeded == 0
    assert result.failed == 2
    assert provider.render() == before
    assert "contact" not in persistence.records


@pytest.mark.asyncio
async def test_max_required_fields_per_form_limit(contact_html):
    provider = MarkupDocumentTree(contact_html)
    service = _service(provider, limits={"free": {"max_forms": 1, "max_required_fields_per_form": 1}})
    form = (await service.scan()).forms[0]

    result = await service.apply_validation(form)

    assert result.succeeded == 1
    assert result.skipped == 1
    assert result.limit_exceeded == [
        {"limit": "maxRequiredFieldsPerForm", "allowed": 1, "requested": 2}
    ]
    assert "data-error-id" in await provider.get_attributes("full-name")
    assert "data-error-id" not in await provider.get_attributes("work-email")


@pytest.mark.asyncio
async def test_supported_field_types_limit(contact_html):
    provider = MarkupDocumentTree(contact_html)
    service = _service(provider, limits={"free": {"supported_field_types": ["plain"]}})
    form = (await service.scan()).forms[0]

    result = await service.apply_validation(form)

    assert result.succeeded == 1
    assert result.skipped == 1
    assert (await provider.get_attribute("work-email", "type")) == "text"


@pytest.mark.asyncio
async def test_max_forms_limit_blocks_second_form():
    provider = MarkupDocumentTree(TWO_FORMS_HTML)
    service = _service(provider, limits={"free": {"max_forms": 1}})
    scan = await service.scan()
    first, second = scan.form("first"), scan.form("second")

    assert (await service.apply_validation(first)).succeeded == 1
    blocked = await service.apply_validation(second)

    assert blocked.succeeded == 0
    assert blocked.limit_exceeded[0]["limit"] == "maxForms"
    assert (await provider.get_attribute("second", "data-a11y-validator")) is None

    # re-applying to an already applied form stays within quota
    assert (await service.apply_validation(first)).limit_exceeded == []


@pytest.mark.asyncio
async def test_limits_service_failure_falls_back_to_defaults(contact_html):
    class BrokenConfig:
        async def get_limits(self, plan_tier):
            raise ConnectionError("config backend down")

    provider = MarkupDocumentTree(contact_html)
    service = FormValidationService(provider, config_service=BrokenConfig())
    form = (await service.scan()).forms[0]

    result = await service.apply_validation(form)
    assert result.succeeded == 2


@pytest.mark.asyncio
async def test_single_field_failure_is_counted_not_raised(simple_tree):
    service = _service(simple_tree)
    form = (await service.scan()).forms[0]
    simple_tree.fail_on.add(("set_attribute", "name"))

    result = await service.apply_validation(form)

    assert result.failed == 1
    assert result.failed_field_ids == ["name"]
    assert result.succeeded == 2
    assert simple_tree.node("email").attributes["type"] == "email"


class KeyFailingTree(InMemoryDocumentTree):
    """Fails set_attribute for one (node, key) pair after earlier keys were written."""

    def __init__(self, nodes, fail_node, fail_key):
        super().__init__(nodes)
        self.fail_node = fail_node
        self.fail_key = fail_key

    async def set_attribute(self, node_id, key, value):
        if (node_id, key) == (self.fail_node, self.fail_key):
            raise ConnectionError(f"write rejected: {key}")
        await super().set_attribute(node_id, key, value)


@pytest.mark.asyncio
async def test_partially_written_field_is_rolled_back(simple_tree):
    provider = KeyFailingTree(
        [simple_tree.node(nid).copy() for nid in ("root", "form1", "wrap", "email", "name", "after")],
        fail_node="name",
        fail_key="data-auto-error-messaging",
    )
    service = _service(provider)
    form = (await service.scan()).forms[0]

    result = await service.apply_validation(form)

    assert result.failed_field_ids == ["name"]
    assert result.succeeded == 2
    assert provider.node("name").attributes == {"aria-label": "Name", "required": "required"}
    assert provider.node("email").attributes["data-auto-error-messaging"] == "true"


@pytest.mark.asyncio
async def test_scan_includes_positional_fields(simple_tree):
    form = (await _service(simple_tree).scan()).forms[0]
    assert [(f.node_id, f.field_type) for f in form.fields] == [
        ("name", FieldType.PLAIN),
        ("email", FieldType.EMAIL),
        ("after", FieldType.PHONE),
    ]


@pytest.mark.asyncio
async def test_form_with_only_unsupported_fields_is_discarded():
    provider = InMemoryDocumentTree([
        make_node("f", "Form", ["subject"]),
        make_node("subject", "TextInput", attrs={"aria-label": "Subject", "required": "required"}),
    ])
    result = await _service(provider).scan()
    assert result.forms == []
    assert result.discarded_form_ids == ["f"]


@pytest.mark.asyncio
async def test_form_with_only_optional_fields_is_kept_with_no_fields():
    provider = InMemoryDocumentTree([
        make_node("f", "Form", ["msg"]),
        make_node("msg", "TextArea", attrs={"aria-label": "Message"}),
    ])
    result = await _service(provider).scan()
    assert result.forms[0].fields == []


@pytest.mark.asyncio
async def test_unavailable_tree_raises():
    provider = InMemoryDocumentTree([make_node("f", "Form")])
    provider.unavailable = True
    with pytest.raises(DocumentTreeUnavailable):
        await _service(provider).scan()


@pytest.mark.asyncio
async def test_plan_validation_does_not_write(contact_html):
    provider = MarkupDocumentTree(contact_html)
    service = _service(provider)
    form = (await service.scan()).forms[0]
    before = provider.render()

    planned = await service.plan_validation(form)

    assert set(planned) == {"full-name", "work-email", "contact"}
    assert planned["work-email"].sets["type"] == "email"
    assert provider.render() == before
