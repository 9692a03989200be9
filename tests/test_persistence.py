"""
Tests for validation state persistence and record serialization.
"""

from datetime import datetime, timezone

import pytest

from form_validator.models import ValidationStateRecord, ValidationStatus
from form_validator.services.persistence import InMemoryStatePersistence, SupabaseStatePersistence


def _record(form_id="contact", scope="site-a", status=ValidationStatus.APPLIED):
    return ValidationStateRecord(
        form_id=form_id,
        has_validation=status == ValidationStatus.APPLIED,
        applied_at=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
        status=status,
        scope_key=scope,
    )


def test_record_row_round_trip():
    row = _record().to_row()
    assert row == {
        "form_id": "contact",
        "scope_key": "site-a",
        "has_validation": True,
        "applied_at": "2024-05-01T09:00:00Z",
        "status": "applied",
    }
    assert ValidationStateRecord.from_row(row) == _record()


def test_unknown_status_reads_as_none():
    record = ValidationStateRecord.from_row({"form_id": "x", "status": "archived"})
    assert record.status == ValidationStatus.NONE
    assert record.applied_at is None


@pytest.mark.asyncio
async def test_in_memory_filters_by_scope():
    store = InMemoryStatePersistence()
    await store.put_validation_state(_record("a", "site-a"))
    await store.put_validation_state(_record("b", "site-b"))

    assert [r.form_id for r in await store.get_validation_states("site-a")] == ["a"]
    assert len(await store.get_validation_states("")) == 2


@pytest.mark.asyncio
async def test_in_memory_removal_is_a_state_transition():
    store = InMemoryStatePersistence()
    await store.put_validation_state(_record())
    await store.put_validation_state(_record(status=ValidationStatus.REMOVED))
    records = await store.get_validation_states("site-a")
    assert [r.status for r in records] == [ValidationStatus.REMOVED]


@pytest.mark.asyncio
async def test_in_memory_put_failure():
    store = InMemoryStatePersistence()
    store.fail_puts = True
    with pytest.raises(ConnectionError):
        await store.put_validation_state(_record())


@pytest.mark.asyncio
async def test_supabase_upserts_on_form_id(fake_supabase):
    store = SupabaseStatePersistence(fake_supabase)
    await store.put_validation_state(_record())
    await store.put_validation_state(_record(status=ValidationStatus.REMOVED))

    table = fake_supabase.tables["validation_states"]
    assert table.calls[0][3] == {"on_conflict": "form_id"}
    assert len(table.rows) == 1

    records = await store.get_validation_states("site-a")
    assert records[0].status == ValidationStatus.REMOVED


@pytest.mark.asyncio
async def test_supabase_delete(fake_supabase):
    store = SupabaseStatePersistence(fake_supabase)
    await store.put_validation_state(_record())
    await store.delete_validation_state("contact")
    assert await store.get_validation_states("") == []


def test_unparseable_timestamp_reads_as_none():
    record = ValidationStateRecord.from_row({"form_id": "x", "status": "applied", "applied_at": "yesterday"})
    assert record.applied_at is None
    assert record.status == ValidationStatus.APPLIED
