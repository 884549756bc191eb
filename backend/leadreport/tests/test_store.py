"""
Report Store Tests
==================

WHAT: Query helpers of the async store access layer.
WHY: The services rely on one-session-per-query to run lookups concurrently.

REFERENCES:
- leadreport/services/store.py
"""

import asyncio

import pytest

from leadreport import models


@pytest.mark.asyncio
async def test_concurrent_queries_use_independent_sessions(store, scenario):
    customer, children, domains, count = await asyncio.gather(
        store.find_customer(scenario.root.id),
        store.distinct_child_customer_ids(scenario.root.id),
        store.distinct_excluded_domains(),
        store.count_identities(models.Identity.inactive.is_(False)),
    )

    assert customer.name == "Root"
    assert children == [scenario.child.id]
    assert domains == []
    assert count == 2


@pytest.mark.asyncio
async def test_find_by_id_returns_none_for_missing_rows(store, scenario):
    assert await store.find_order(scenario.root.id) is None


@pytest.mark.asyncio
async def test_identity_relationships_are_loaded_eagerly(store, seed, scenario):
    identity = seed.identity("x@acme.com", inactive_customers=[scenario.root])

    loaded = await store.find_identity(identity.id)

    # Session is closed here; the inactive sets must already be loaded
    assert loaded.inactive_customer_ids == [scenario.root.id]
    assert loaded.inactive_line_item_ids == []


@pytest.mark.asyncio
async def test_find_identity_ids_limit(store, scenario):
    everyone = await store.find_identity_ids(models.Identity.id.is_not(None))
    capped = await store.find_identity_ids(models.Identity.id.is_not(None), limit=2)
    uncapped = await store.find_identity_ids(models.Identity.id.is_not(None), limit=0)

    assert len(everyone) == 3
    assert len(capped) == 2
    assert len(uncapped) == 3
