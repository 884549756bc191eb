"""
Criteria Schema
===============

Typed building blocks for line item targeting and query predicates.

Two groups of models live here:
- Pydantic models describing a line item's targeting configuration
  (what the configuration UI stores on the line item row)
- Frozen dataclasses describing predicates as (field, operator, value)
  triples combined with AllOf / AnyOf

WHY typed predicates?
- The field universe is explicit: every target collection declares the
  fields it supports (see leadreport/criteria/executor.py)
- The same tree compiles to SQL and evaluates in memory, so scrub
  explanations always agree with the counts

Related files:
- leadreport/criteria/builder.py: Builds predicate trees from a line item
- leadreport/criteria/executor.py: Compiles / evaluates predicate trees
- leadreport/models.py: LineItem row the targeting is loaded from
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional, Tuple, Union
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError

from leadreport.exceptions import InvalidLineItemError


class MatchType(str, Enum):
    """
    How an identity filter term is matched against a field value.

    All matching is case-insensitive and terms are literal text.
    - CONTAINS: term appears anywhere
    - STARTS: value begins with term
    - MATCHES: value equals term
    """
    CONTAINS = "contains"
    STARTS = "starts"
    MATCHES = "matches"


# Identity profile fields that identity filters and required fields may name.
IDENTITY_PROFILE_FIELDS: Tuple[str, ...] = (
    "email_address",
    "email_domain",
    "given_name",
    "family_name",
    "title",
    "company_name",
    "organization_type",
    "phone_number",
    "street",
    "city",
    "region",
    "postal_code",
    "country",
)


# =====================================================================
# Line item targeting
# =====================================================================

class DateRange(BaseModel):
    """Targeting window. Dates may be naive (UTC) or timezone-aware."""
    start: Union[datetime, date]
    end: Union[datetime, date]


class ExcludedUrl(BaseModel):
    """A (url, deployment) pair removed from a line item's eligible set."""
    url_id: UUID
    deployment_entity: str


class IdentityFilter(BaseModel):
    """
    Excludes identities whose `key` field matches any of `terms`.

    `match_type` is kept as a plain string here so that an unsupported value
    fails when the filter is built, not when the line item is loaded.
    """
    key: str
    match_type: str = "contains"
    terms: List[Optional[str]] = Field(default_factory=list)


class LineItemTargeting(BaseModel):
    """
    Validated targeting configuration of an email line item.

    Read-only to the reporting core; the configuration UI owns writes.
    """
    id: UUID
    order_id: UUID
    name: Optional[str] = None
    range: DateRange
    tag_ids: List[UUID] = Field(default_factory=list)
    excluded_tag_ids: List[UUID] = Field(default_factory=list)
    link_types: List[str] = Field(default_factory=list)
    excluded_urls: List[ExcludedUrl] = Field(default_factory=list)
    identity_filters: List[IdentityFilter] = Field(default_factory=list)
    required_fields: List[str] = Field(default_factory=list)
    required_leads: int = Field(default=0, ge=0)
    excluded_fields: List[str] = Field(default_factory=list)

    @classmethod
    def from_model(cls, row: Any) -> "LineItemTargeting":
        """Build from a `models.LineItem` row.

        Raises:
            InvalidLineItemError: if the stored configuration does not validate
        """
        try:
            return cls(
                id=row.id,
                order_id=row.order_id,
                name=row.name,
                range=DateRange(start=row.range_start, end=row.range_end),
                tag_ids=row.tag_ids or [],
                excluded_tag_ids=row.excluded_tag_ids or [],
                link_types=row.link_types or [],
                excluded_urls=row.excluded_urls or [],
                identity_filters=row.identity_filters or [],
                required_fields=row.required_fields or [],
                required_leads=row.required_leads or 0,
                excluded_fields=row.excluded_fields or [],
            )
        except ValidationError as e:
            raise InvalidLineItemError(row.id, e.errors()) from e


# =====================================================================
# Predicates
# =====================================================================

class Operator(str, Enum):
    EQ = "eq"
    NE = "ne"
    IN = "in"
    NOT_IN = "not_in"
    GTE = "gte"
    LTE = "lte"
    INTERSECTS = "intersects"
    NOT_INTERSECTS = "not_intersects"
    NOT_EMPTY = "not_empty"
    NOT_MATCH_ANY = "not_match_any"


@dataclass(frozen=True)
class TermPattern:
    """
    A literal, case-insensitive term anchored according to its match type.

    Example:
        >>> TermPattern(MatchType.STARTS, "a.b").regex().pattern
        '^a\\\\.b'
        >>> TermPattern(MatchType.CONTAINS, "50%").like_pattern()
        '%50\\\\%%'
    """
    match_type: MatchType
    term: str

    def regex(self) -> "re.Pattern[str]":
        prefix = "^" if self.match_type in (MatchType.STARTS, MatchType.MATCHES) else ""
        suffix = r"\Z" if self.match_type == MatchType.MATCHES else ""
        return re.compile(f"{prefix}{re.escape(self.term)}{suffix}", re.IGNORECASE)

    def like_pattern(self) -> str:
        """Equivalent SQL LIKE pattern, escaped with a backslash."""
        escaped = (
            self.term.replace("\\", "\\\\")
            .replace("%", "\\%")
            .replace("_", "\\_")
        )
        if self.match_type == MatchType.CONTAINS:
            return f"%{escaped}%"
        if self.match_type == MatchType.STARTS:
            return f"{escaped}%"
        return escaped

    def matches(self, value: Any) -> bool:
        if value is None:
            return False
        return self.regex().search(str(value)) is not None


@dataclass(frozen=True)
class FieldPredicate:
    """A single (field, operator, value) triple."""
    field: str
    op: Operator
    value: Any = None


@dataclass(frozen=True)
class AllOf:
    """Conjunction. An empty AllOf is always true."""
    predicates: Tuple["Criteria", ...]


@dataclass(frozen=True)
class AnyOf:
    """Disjunction. An empty AnyOf is always false."""
    predicates: Tuple["Criteria", ...]


Criteria = Union[FieldPredicate, AllOf, AnyOf]
