"""
Identity Router
===============

WHAT:
    Activation toggles and the domain denylist check for a single identity.

WHY:
    Opt-outs arrive from account managers per identity: globally, for one
    customer or for one line item. Qualification reads these flags through
    the exclusion criteria, so a toggle changes the next report.

ERRORS:
    NotFoundError -> 404 (handler in leadreport/main.py).

REFERENCES:
    - leadreport/services/identity_service.py
    - leadreport/services/exclusion.py (where the flags are applied)
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from leadreport import models
from leadreport.deps import get_identity_service
from leadreport.schemas import ActivationIn, DomainExcludedOut, IdentityActivationOut
from leadreport.services.identity_service import IdentityService

router = APIRouter(
    prefix="/identities",
    tags=["Identities"],
    responses={404: {"description": "Identity not found"}},
)


def activation_out(identity: models.Identity) -> IdentityActivationOut:
    return IdentityActivationOut(
        identity_id=identity.id,
        inactive=bool(identity.inactive),
        inactive_customer_ids=identity.inactive_customer_ids,
        inactive_line_item_ids=identity.inactive_line_item_ids,
    )


@router.get("/{identity_id}/domain-excluded", response_model=DomainExcludedOut)
async def get_domain_excluded(
    identity_id: UUID,
    service: IdentityService = Depends(get_identity_service),
):
    identity = await service.get_identity(identity_id)
    excluded = await service.is_domain_excluded(identity)
    return DomainExcludedOut(identity_id=identity.id, email_domain=identity.email_domain, excluded=excluded)


@router.put("/{identity_id}/activation", response_model=IdentityActivationOut)
async def set_activation(
    identity_id: UUID,
    payload: ActivationIn,
    service: IdentityService = Depends(get_identity_service),
):
    """Global opt-out flag."""
    identity = await service.set_active(identity_id, payload.active)
    return activation_out(identity)


@router.put("/{identity_id}/customers/{customer_id}/activation", response_model=IdentityActivationOut)
async def set_customer_activation(
    identity_id: UUID,
    customer_id: UUID,
    payload: ActivationIn,
    service: IdentityService = Depends(get_identity_service),
):
    """Add the customer to (inactive) or remove it from (active) the identity's inactive customers."""
    identity = await service.set_customer_active(identity_id, customer_id, payload.active)
    return activation_out(identity)


@router.put("/{identity_id}/line-items/{line_item_id}/activation", response_model=IdentityActivationOut)
async def set_line_item_activation(
    identity_id: UUID,
    line_item_id: UUID,
    payload: ActivationIn,
    service: IdentityService = Depends(get_identity_service),
):
    identity = await service.set_line_item_active(identity_id, line_item_id, payload.active)
    return activation_out(identity)
