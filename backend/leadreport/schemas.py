"""Pydantic schemas for API responses."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .services.email_report import SortOrder


class QualificationOut(BaseModel):
    """Qualification figures of a line item."""

    line_item_id: UUID
    total: int = Field(description="Eligible identities (clicked an eligible url in the window)")
    qualified: int = Field(description="Eligible identities passing every exclusion rule")
    scrubbed: int = Field(description="Eligible identities removed by exclusion (total - qualified)")
    required_leads: int = Field(description="Lead goal of the line item, 0 when unset")

    model_config = {
        "json_schema_extra": {
            "example": {
                "line_item_id": "123e4567-e89b-12d3-a456-426614174000",
                "total": 3,
                "qualified": 2,
                "scrubbed": 1,
                "required_leads": 2,
            }
        }
    }


class IdentityIdsOut(BaseModel):
    """A list of identity ids for a line item."""

    line_item_id: UUID
    identity_ids: List[UUID]
    count: int


class DeploymentUrlOut(BaseModel):
    """One (url, deployment) pair matching the line item's targeting."""

    url_id: UUID
    url: Optional[str] = None
    deployment_entity: str
    deployment_name: Optional[str] = None
    sent_date: Optional[datetime] = None
    link_type: str
    excluded: bool = Field(description="True when the pair is in the line item's excluded urls")


class ClickIdentifiersOut(BaseModel):
    """Active identities with the eligible url/deployment lists (parallel lists)."""

    line_item_id: UUID
    identity_ids: List[UUID]
    url_ids: List[UUID]
    deployment_entities: List[str]


class EmailMetricsRowOut(BaseModel):
    identity_id: UUID
    clicks: int
    url_count: int
    deployment_count: int
    deployment_entities: List[str]


class EmailMetricsTotalsOut(BaseModel):
    identities: int
    clicks: int
    deployments: int
    clicked_deployments: int
    unique_urls: int


class EmailMetricsOut(BaseModel):
    """Per-identity click report of a line item."""

    line_item_id: UUID
    sort: str
    order: SortOrder
    rows: List[EmailMetricsRowOut]
    totals: EmailMetricsTotalsOut


class ScrubReasonsOut(BaseModel):
    """Why an identity is scrubbed for a line item. No reasons = qualified."""

    line_item_id: UUID
    identity_id: UUID
    qualified: bool
    reasons: List[str] = Field(
        description="inactive, inactive_customer, inactive_line_item, excluded_domain, "
                    "filtered:<field> or missing:<field>"
    )


class IdentityExportOut(BaseModel):
    """Active identities of a line item with their click metrics."""

    line_item_id: UUID
    fields: List[str] = Field(description="Exported identity fields, after the line item's excluded fields")
    rows: List[Dict[str, Any]] = Field(
        description="identity_id, the exported fields, clicks, url_count and deployment_entities"
    )
    count: int


class ActivationIn(BaseModel):
    """Activate (true) or deactivate (false) an identity for a scope."""

    active: bool


class IdentityActivationOut(BaseModel):
    """Activation state of an identity after an update."""

    identity_id: UUID
    inactive: bool
    inactive_customer_ids: List[UUID]
    inactive_line_item_ids: List[UUID]


class DomainExcludedOut(BaseModel):
    identity_id: UUID
    email_domain: Optional[str] = None
    excluded: bool = Field(description="True when the email domain is on the denylist")


class HealthResponse(BaseModel):
    status: str = Field(description="Service status", examples=["ok"])
