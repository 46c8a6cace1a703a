"""Tests for correlation persistence."""

from types import SimpleNamespace

import pytest

from correlator.correlate.types import CandidateKind, CandidateProduct, PrimaryProduct
from correlator.db.correlation_store import CorrelationStore
from correlator.db.models import CorrelationRecord
from correlator.errors import PersistenceConflict
from tests.conftest import PRIMARY, SIMILAR_1, VARIANT_1, VARIANT_2, make_record


def primary() -> PrimaryProduct:
    return PrimaryProduct.from_record(make_record(PRIMARY, "Acme Bluetooth Speaker"))


def item(asin: str, kind=CandidateKind.VARIANT, title=None) -> CandidateProduct:
    return CandidateProduct.from_record(make_record(asin, title), kind)


@pytest.mark.asyncio
async def test_upsert_is_idempotent(db_session):
    store = CorrelationStore(db_session)
    items = [item(VARIANT_1), item(VARIANT_2)]

    assert await store.upsert_batch("owner-1", primary(), items, "test") == 2
    assert await store.upsert_batch("owner-1", primary(), items, "test") == 2

    assert await store.count("owner-1", PRIMARY) == 2


@pytest.mark.asyncio
async def test_upsert_refreshes_discovery_fields_and_keeps_decision(db_session):
    store = CorrelationStore(db_session)
    await store.upsert_batch("owner-1", primary(), [item(SIMILAR_1, CandidateKind.SIMILAR, "Old title")], "v1")

    record = await store.get("owner-1", PRIMARY, SIMILAR_1)
    record.decision = "accepted"
    record.available_us = True
    record.uploaded_uk = True
    await db_session.commit()

    await store.upsert_batch("owner-1", primary(), [item(SIMILAR_1, CandidateKind.SIMILAR, "New title")], "v2")

    record = await store.get("owner-1", PRIMARY, SIMILAR_1)
    assert record.correlated_title == "New title"
    assert record.source == "v2"
    assert record.decision == "accepted"
    assert record.available_us is True
    assert record.uploaded_uk is True


@pytest.mark.asyncio
async def test_upsert_drops_self_reference_and_duplicates(db_session):
    store = CorrelationStore(db_session)
    items = [item(PRIMARY), item(VARIANT_1, title="First"), item(VARIANT_1, title="Second")]

    written = await store.upsert_batch("owner-1", primary(), items, "test")

    assert written == 1
    rows = await store.check_existing("owner-1", PRIMARY)
    assert [(r.similar_asin, r.correlated_title) for r in rows] == [(VARIANT_1, "Second")]


@pytest.mark.asyncio
async def test_reads_are_scoped_to_owner(db_session):
    store = CorrelationStore(db_session)
    await store.upsert_batch("owner-1", primary(), [item(VARIANT_1)], "test")

    assert await store.check_existing("owner-2", PRIMARY) == []
    assert await store.get("owner-2", PRIMARY, VARIANT_1) is None
    assert len(await store.check_existing("owner-1", PRIMARY)) == 1


@pytest.mark.asyncio
async def test_constraint_violation_raises_conflict_and_rolls_back(db_session):
    store = CorrelationStore(db_session)
    await store.upsert_batch("owner-1", primary(), [item(VARIANT_1)], "test")
    bad = item(VARIANT_2)
    bad.kind = SimpleNamespace(value="bundle")

    with pytest.raises(PersistenceConflict):
        await store.upsert_batch("owner-1", primary(), [bad], "test")

    assert await store.count("owner-1", PRIMARY) == 1


def test_field_groups_are_disjoint():
    discovery = set(CorrelationRecord.DISCOVERY_FIELDS)
    feedback = set(CorrelationRecord.FEEDBACK_FIELDS)

    assert not discovery & feedback
    assert "decision" in feedback
    columns = set(CorrelationRecord.__table__.columns.keys())
    assert discovery <= columns
    assert feedback <= columns
