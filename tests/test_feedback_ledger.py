"""Tests for the feedback ledger."""

import pytest

from correlator.correlate.feedback_ledger import FeedbackLedger, normalize_marketplace
from correlator.correlate.types import CandidateKind, CandidateProduct, PrimaryProduct
from correlator.db.correlation_store import CorrelationStore
from correlator.db.models import UserApiKey
from correlator.errors import InvalidFeedback, NotFound
from correlator.ingest.credentials import CredentialResolver
from tests.conftest import PRIMARY, SIMILAR_1, SIMILAR_2, FakeGateway, make_record

OWNER = "owner-1"
MARKETPLACES = {"US": 1, "UK": 2, "DE": 3, "CA": 6}


@pytest.fixture
async def stored(db_session):
    primary = PrimaryProduct.from_record(make_record(PRIMARY, "Acme Bluetooth Speaker"))
    candidate = CandidateProduct.from_record(make_record(SIMILAR_1), CandidateKind.SIMILAR)
    await CorrelationStore(db_session).upsert_batch(OWNER, primary, [candidate], "test")


def make_ledger(db_session, gateway, fallback_key="system-key") -> FeedbackLedger:
    return FeedbackLedger(
        db_session,
        lambda api_key: gateway,
        credentials=CredentialResolver(db_session, fallback_key=fallback_key),
        marketplaces=MARKETPLACES,
    )


@pytest.fixture
async def owner_key(db_session):
    db_session.add(UserApiKey(owner_id=OWNER, service="keepa", api_key="owner-key"))
    await db_session.commit()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(products={SIMILAR_1: make_record(SIMILAR_1)})


@pytest.mark.asyncio
async def test_decision_requires_existing_correlation(db_session, gateway):
    ledger = make_ledger(db_session, gateway)

    with pytest.raises(NotFound):
        await ledger.set_decision(OWNER, PRIMARY, SIMILAR_2, "accepted")

    assert gateway.lookup_calls == []


@pytest.mark.asyncio
async def test_invalid_decision_is_rejected(db_session, stored, gateway):
    with pytest.raises(InvalidFeedback):
        await make_ledger(db_session, gateway).set_decision(OWNER, PRIMARY, SIMILAR_1, "maybe")


@pytest.mark.asyncio
async def test_accept_probes_every_marketplace_and_tolerates_failure(db_session, stored, owner_key):
    gateway = FakeGateway(
        products={SIMILAR_1: make_record(SIMILAR_1)},
        failing_domains={3},
        missing_domains={6},
    )
    used_keys = []
    ledger = FeedbackLedger(
        db_session,
        lambda api_key: used_keys.append(api_key) or gateway,
        credentials=CredentialResolver(db_session, fallback_key="system-key"),
        marketplaces=MARKETPLACES,
    )

    record = await ledger.set_decision(OWNER, PRIMARY, SIMILAR_1, "accepted")

    assert sorted(domain for _, domain in gateway.probe_calls) == [1, 2, 3, 6]
    assert record.decision == "accepted"
    assert record.decision_at is not None
    assert record.availability() == {"US": True, "UK": True, "DE": None, "CA": False}
    assert record.availability_checked_at is not None
    assert gateway.closed is True
    assert used_keys == ["owner-key"]


@pytest.mark.asyncio
@pytest.mark.parametrize("fallback_key", ["", "system-key"])
async def test_accept_without_owner_key_skips_probe(db_session, stored, gateway, fallback_key):
    record = await make_ledger(db_session, gateway, fallback_key=fallback_key).set_decision(
        OWNER, PRIMARY, SIMILAR_1, "accepted"
    )

    assert record.decision == "accepted"
    assert gateway.probe_calls == []
    assert record.availability_checked_at is None
    assert record.availability() == {"US": None, "UK": None, "DE": None, "CA": None}


@pytest.mark.asyncio
async def test_decline_stores_reason_without_probing(db_session, stored, gateway):
    record = await make_ledger(db_session, gateway).set_decision(
        OWNER, PRIMARY, SIMILAR_1, "declined", reason="accessory"
    )

    assert record.decision == "declined"
    assert record.decline_reason == "accessory"
    assert gateway.lookup_calls == []


@pytest.mark.asyncio
async def test_undo_is_idempotent(db_session, stored, gateway):
    ledger = make_ledger(db_session, gateway)
    await ledger.set_decision(OWNER, PRIMARY, SIMILAR_1, "declined", reason="wrong size")

    assert await ledger.undo(OWNER, PRIMARY, SIMILAR_1) is True
    assert await ledger.undo(OWNER, PRIMARY, SIMILAR_1) is False
    assert await ledger.undo(OWNER, PRIMARY, SIMILAR_2) is False

    record = await CorrelationStore(db_session).get(OWNER, PRIMARY, SIMILAR_1)
    assert record is not None
    assert record.decision is None
    assert record.decision_at is None
    assert record.decline_reason is None


@pytest.mark.asyncio
async def test_mark_published_is_additive(db_session, stored, gateway):
    ledger = make_ledger(db_session, gateway)

    first = await ledger.mark_published(OWNER, PRIMARY, SIMILAR_1, "usa")
    first_at = first.uploaded_us_at
    second = await ledger.mark_published(OWNER, PRIMARY, SIMILAR_1, "US")
    third = await ledger.mark_published(OWNER, PRIMARY, SIMILAR_1, "de")

    assert second.uploaded_us_at == first_at
    assert third.uploads() == {"US": True, "UK": False, "DE": True, "CA": False}


@pytest.mark.asyncio
async def test_mark_published_rejects_unknown_marketplace(db_session, stored, gateway):
    with pytest.raises(InvalidFeedback):
        await make_ledger(db_session, gateway).mark_published(OWNER, PRIMARY, SIMILAR_1, "fr")


@pytest.mark.asyncio
async def test_mark_published_on_missing_correlation_is_a_no_op(db_session, stored, gateway):
    ledger = make_ledger(db_session, gateway)

    assert await ledger.mark_published(OWNER, PRIMARY, SIMILAR_2, "us") is None
    assert await ledger.mark_published(OWNER, PRIMARY, SIMILAR_2, "us") is None
    assert [r.similar_asin for r in await ledger.get_feedback(OWNER, PRIMARY)] == [SIMILAR_1]


def test_marketplace_aliases():
    assert normalize_marketplace(" USA ") == "US"
    assert normalize_marketplace("uk") == "UK"
    with pytest.raises(InvalidFeedback):
        normalize_marketplace(None)
