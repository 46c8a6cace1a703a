"""Tests for the discovery engine."""

import pytest
from sqlalchemy import select

from correlator.ai.similarity_classifier import SimilarityClassifier
from correlator.correlate.engine import CorrelationEngine
from correlator.db.models import ApiUsage, FeedbackCriteriaProfile
from correlator.errors import InvalidFeedback, InvalidIdentifier, MissingCredential, NotFound, RunTimeout
from correlator.ingest.credentials import CredentialResolver
from tests.conftest import PRIMARY, SIMILAR_1, VARIANT_1, VARIANT_2, FakeGateway, FakeLLM, make_record

OWNER = "owner-1"


def make_engine(db_session, gateway, llm, fallback_key="system-key", **kwargs) -> CorrelationEngine:
    keys = []

    def factory(api_key):
        keys.append(api_key)
        return gateway

    engine = CorrelationEngine(
        db_session,
        factory,
        SimilarityClassifier(llm),
        credentials=CredentialResolver(db_session, fallback_key=fallback_key),
        **kwargs,
    )
    engine.used_keys = keys
    return engine


@pytest.mark.asyncio
async def test_sync_persists_variants_and_approved_similar(db_session, catalog, llm):
    engine = make_engine(db_session, catalog, llm)

    result = await engine.discover(OWNER, PRIMARY.lower(), action="sync")

    kinds = {r.similar_asin: r.suggested_type for r in result.correlations}
    assert kinds == {VARIANT_1: "variant", VARIANT_2: "variant", SIMILAR_1: "similar"}
    assert result.exists is True
    assert result.count == 3
    assert result.synced is True
    assert result.stats.to_dict() == {"variants": 2, "similar": 1}
    assert result.message == "Found 2 variations + 1 similar products"
    assert catalog.closed is True

    # Variants are never sent to the classifier
    assert len(llm.prompts) == 2
    assert all(VARIANT_1 not in p and VARIANT_2 not in p for p in llm.prompts)


@pytest.mark.asyncio
async def test_sync_twice_keeps_count_and_decisions(db_session, catalog, llm):
    engine = make_engine(db_session, catalog, llm)
    first = await engine.discover(OWNER, PRIMARY, action="sync")

    decided = next(r for r in first.correlations if r.similar_asin == SIMILAR_1)
    decided.decision = "accepted"
    await db_session.commit()

    second = await engine.discover(OWNER, PRIMARY, action="sync")
    check = await engine.discover(OWNER, PRIMARY, action="check")

    assert second.count == first.count == check.count == 3
    assert {r.similar_asin: r.decision for r in check.correlations}[SIMILAR_1] == "accepted"
    assert check.source == "database"
    assert check.stats is None


@pytest.mark.asyncio
async def test_check_is_read_only(db_session, catalog, llm):
    engine = make_engine(db_session, catalog, llm)

    result = await engine.discover(OWNER, PRIMARY, action="check")

    assert result.exists is False
    assert result.correlations == []
    assert catalog.lookup_calls == []


@pytest.mark.asyncio
async def test_invalid_identifier_fails_before_network(db_session, catalog, llm):
    engine = make_engine(db_session, catalog, llm)

    with pytest.raises(InvalidIdentifier):
        await engine.discover(OWNER, "not-an-asin", action="sync")

    assert catalog.lookup_calls == []


@pytest.mark.asyncio
async def test_unknown_action_is_rejected(db_session, catalog, llm):
    with pytest.raises(InvalidFeedback):
        await make_engine(db_session, catalog, llm).discover(OWNER, PRIMARY, action="delete")


@pytest.mark.asyncio
async def test_sync_without_credential(db_session, catalog, llm):
    engine = make_engine(db_session, catalog, llm, fallback_key="")

    with pytest.raises(MissingCredential):
        await engine.discover(OWNER, PRIMARY, action="sync")

    assert catalog.lookup_calls == []


@pytest.mark.asyncio
async def test_credential_override_wins(db_session, catalog, llm):
    engine = make_engine(db_session, catalog, llm)

    await engine.discover(OWNER, PRIMARY, action="sync", credential_override="owner-key")

    assert engine.used_keys == ["owner-key"]


@pytest.mark.asyncio
async def test_unknown_primary_raises_not_found(db_session, llm):
    gateway = FakeGateway()

    with pytest.raises(NotFound):
        await make_engine(db_session, gateway, llm).discover(OWNER, PRIMARY, action="sync")

    assert gateway.closed is True


@pytest.mark.asyncio
async def test_sync_with_nothing_found(db_session, llm):
    gateway = FakeGateway(products={PRIMARY: make_record(PRIMARY, brand=None)})

    result = await make_engine(db_session, gateway, llm).discover(OWNER, PRIMARY, action="sync")

    assert result.count == 0
    assert result.exists is False
    assert result.message == "No variations or similar products found"


@pytest.mark.asyncio
async def test_enabled_profile_criteria_reach_the_classifier(db_session, catalog, llm):
    db_session.add(
        FeedbackCriteriaProfile(
            owner_id=OWNER,
            criteria_text="Answer YES if:\n- Any Acme speaker\n\nAnswer NO if:\n- Cables",
            enabled=True,
            based_on_count=5,
        )
    )
    await db_session.commit()

    await make_engine(db_session, catalog, llm).discover(OWNER, PRIMARY, action="sync")

    assert all("Any Acme speaker" in p for p in llm.prompts)


@pytest.mark.asyncio
async def test_sync_records_usage(db_session, catalog, llm):
    await make_engine(db_session, catalog, llm).discover(OWNER, PRIMARY, action="sync")

    rows = (await db_session.execute(select(ApiUsage))).scalars().all()
    usage = {(r.service, r.action): r.units for r in rows}
    assert usage[("keepa", "correlation_sync")] == 5
    assert usage[("openai", "similarity_classification")] == 2


@pytest.mark.asyncio
async def test_timeout_keeps_variants(db_session, catalog):
    slow_llm = FakeLLM(default="YES", delay=5)
    engine = make_engine(db_session, catalog, slow_llm, sync_timeout=0.2)

    with pytest.raises(RunTimeout) as exc_info:
        await engine.discover(OWNER, PRIMARY, action="sync")

    assert exc_info.value.status_code == 504
    assert exc_info.value.details["saved"] == 2
    check = await engine.discover(OWNER, PRIMARY, action="check")
    assert {r.similar_asin for r in check.correlations} == {VARIANT_1, VARIANT_2}


@pytest.mark.asyncio
async def test_progress_is_reported(db_session, catalog, llm):
    snapshots = []

    async def progress(state):
        snapshots.append((state.total, state.processed, state.approved, state.rejected))

    await make_engine(db_session, catalog, llm).discover(OWNER, PRIMARY, action="sync", progress=progress)

    assert snapshots[0] == (4, 0, 0, 0)
    assert snapshots[-1] == (4, 4, 3, 1)
