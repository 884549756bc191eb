"""
Identity Service Tests
======================

WHAT: Activation toggles and the excluded-domain check.
WHY: Toggles feed the exclusion criteria; a toggle that does not persist
     silently changes qualification counts.

REFERENCES:
- leadreport/services/identity_service.py
"""

import uuid

import pytest

from leadreport import models
from leadreport.criteria.schema import LineItemTargeting
from leadreport.exceptions import NotFoundError
from leadreport.services.identity_service import IdentityService


def reload(db_session, identity):
    db_session.expire_all()
    return db_session.get(models.Identity, identity.id)


@pytest.mark.asyncio
async def test_set_active_toggles_global_flag(store, seed, db_session):
    identity = seed.identity("person@example.com")
    service = IdentityService(store)

    await service.set_active(identity.id, False)
    assert reload(db_session, identity).inactive is True

    await service.set_active(identity.id, True)
    assert reload(db_session, identity).inactive is False


@pytest.mark.asyncio
async def test_set_customer_active_adds_and_removes(store, seed, db_session):
    customer = seed.customer("Acme")
    identity = seed.identity("person@example.com")
    service = IdentityService(store)

    await service.set_customer_active(identity.id, customer.id, False)
    # Deactivating twice keeps a single entry
    updated = await service.set_customer_active(identity.id, customer.id, False)
    assert updated.inactive_customer_ids == [customer.id]
    assert reload(db_session, identity).inactive_customer_ids == [customer.id]

    await service.set_customer_active(identity.id, customer.id, True)
    assert reload(db_session, identity).inactive_customer_ids == []


@pytest.mark.asyncio
async def test_set_line_item_active_changes_qualification(store, service, seed, scenario):
    identity_service = IdentityService(store)
    line_item = LineItemTargeting.from_model(scenario.line_item)

    await identity_service.set_line_item_active(scenario.alice.id, scenario.line_item.id, False)
    scrubbed = await service.get_qualified_identity_count(line_item)
    await identity_service.set_line_item_active(scenario.alice.id, scenario.line_item.id, True)
    restored = await service.get_qualified_identity_count(line_item)

    assert scrubbed.qualified == 1
    assert restored.qualified == 2


@pytest.mark.asyncio
async def test_unknown_identity_raises_not_found(store):
    service = IdentityService(store)

    with pytest.raises(NotFoundError) as exc_info:
        await service.set_active(uuid.uuid4(), False)
    assert exc_info.value.kind == "identity"


@pytest.mark.asyncio
async def test_is_domain_excluded(store, seed):
    seed.excluded_domain("blocked.org")
    blocked = seed.identity("someone@blocked.org")
    allowed = seed.identity("someone@allowed.org")
    no_email = seed.identity(None)
    service = IdentityService(store)

    assert await service.is_domain_excluded(blocked) is True
    assert await service.is_domain_excluded(allowed) is False
    assert await service.is_domain_excluded(no_email) is False
