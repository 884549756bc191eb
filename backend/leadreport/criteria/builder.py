"""
Criteria Builder
================

Pure functions that turn a line item's targeting configuration into
predicate trees. No I/O: anything that needs the store (customer
hierarchy, excluded domains) is resolved by the caller and passed in.

Design:
- Every date-range criteria extends the range end by a grace period so
  deployments sent near the boundary still admit later clicks
- Identity filters use negated membership: an identity is excluded when
  its field matches ANY term of the filter
- Required fields reject the empty string; a missing (NULL) value passes

Related files:
- leadreport/criteria/schema.py: Predicate and targeting models
- leadreport/criteria/executor.py: Compiles the trees to SQL
- leadreport/services/eligibility.py, exclusion.py: Callers
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import List, Sequence, Union
from uuid import UUID

from leadreport.criteria.schema import (
    IDENTITY_PROFILE_FIELDS,
    AllOf,
    AnyOf,
    FieldPredicate,
    LineItemTargeting,
    MatchType,
    Operator,
    TermPattern,
)
from leadreport.exceptions import InvalidFilterError

END_DATE_GRACE_DAYS = 7


def to_utc_naive(value: Union[datetime, date]) -> datetime:
    """Normalize a date or datetime to a naive UTC datetime.

    Timezone-aware values are converted to UTC; plain dates become midnight.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime(value.year, value.month, value.day)


def get_start_date(line_item: LineItemTargeting) -> datetime:
    return to_utc_naive(line_item.range.start)


def get_end_date(line_item: LineItemTargeting, grace_days: int = END_DATE_GRACE_DAYS) -> datetime:
    """Range end plus the grace period (7 days by default).

    Example:
        range.end = 2024-01-01 -> 2024-01-08 00:00
    """
    return to_utc_naive(line_item.range.end) + timedelta(days=grace_days)


def create_identity_filter(line_item: LineItemTargeting) -> List[FieldPredicate]:
    """
    Build the identity filter and required field predicates.

    Returns a list of predicates that are conjoined by the caller. An empty
    list means the line item applies no profile filtering.

    Raises:
        InvalidFilterError: unknown field name or unsupported match type
    """
    predicates: List[FieldPredicate] = []

    for identity_filter in line_item.identity_filters:
        field = _check_profile_field(identity_filter.key)
        try:
            match_type = MatchType(identity_filter.match_type)
        except ValueError:
            raise InvalidFilterError(
                f"Unsupported match type '{identity_filter.match_type}' for field '{field}'",
                field_name=field,
            )
        patterns = tuple(
            TermPattern(match_type=match_type, term=term)
            for term in identity_filter.terms
            if term
        )
        predicates.append(FieldPredicate(field, Operator.NOT_MATCH_ANY, patterns))

    for required in line_item.required_fields:
        field = _check_profile_field(required)
        predicates.append(FieldPredicate(field, Operator.NOT_EMPTY))

    return predicates


def deployment_url_criteria(
    line_item: LineItemTargeting,
    customer_ids: Sequence[UUID],
    grace_days: int = END_DATE_GRACE_DAYS,
) -> AllOf:
    """
    Eligibility criteria for deployment urls, excluding the excluded-url list.

    - url customer OR host customer in the customer scope
    - url tags OR host tags intersect `tag_ids` (when set)
    - url tags AND host tags do not intersect `excluded_tag_ids` (when set)
    - link type in `link_types`
    - deployment sent date within [range.start, end date]
    """
    customer_ids = list(customer_ids)
    predicates: List = [
        AnyOf((
            FieldPredicate("customer_id", Operator.IN, customer_ids),
            FieldPredicate("host.customer_id", Operator.IN, customer_ids),
        )),
    ]

    if line_item.tag_ids:
        predicates.append(AnyOf((
            FieldPredicate("tag_ids", Operator.INTERSECTS, list(line_item.tag_ids)),
            FieldPredicate("host.tag_ids", Operator.INTERSECTS, list(line_item.tag_ids)),
        )))

    if line_item.excluded_tag_ids:
        predicates.append(AllOf((
            FieldPredicate("tag_ids", Operator.NOT_INTERSECTS, list(line_item.excluded_tag_ids)),
            FieldPredicate("host.tag_ids", Operator.NOT_INTERSECTS, list(line_item.excluded_tag_ids)),
        )))

    predicates.append(FieldPredicate("link_type", Operator.IN, list(line_item.link_types)))
    predicates.append(FieldPredicate("deployment.sent_date", Operator.GTE, get_start_date(line_item)))
    predicates.append(FieldPredicate("deployment.sent_date", Operator.LTE, get_end_date(line_item, grace_days)))
    return AllOf(tuple(predicates))


def identity_exclusion_criteria(
    line_item: LineItemTargeting,
    customer_ids: Sequence[UUID],
    excluded_domains: Sequence[str],
) -> AllOf:
    """
    Criteria an identity must satisfy to be qualified for the line item.

    - not globally inactive
    - not inactive for any customer in scope
    - not inactive for this line item
    - email domain not denylisted (only when the denylist is non-empty)
    - identity filters and required fields
    """
    predicates: List = [
        FieldPredicate("inactive", Operator.EQ, False),
        FieldPredicate("inactive_customer_ids", Operator.NOT_INTERSECTS, list(customer_ids)),
        FieldPredicate("inactive_line_item_ids", Operator.NOT_INTERSECTS, [line_item.id]),
    ]
    if excluded_domains:
        predicates.append(FieldPredicate("email_domain", Operator.NOT_IN, list(excluded_domains)))

    identity_filter = create_identity_filter(line_item)
    if identity_filter:
        predicates.append(AllOf(tuple(identity_filter)))
    return AllOf(tuple(predicates))


def inactive_identity_criteria(line_item: LineItemTargeting, customer_ids: Sequence[UUID]) -> AnyOf:
    """Identities deactivated globally, for the customer scope, or for this line item."""
    return AnyOf((
        FieldPredicate("inactive", Operator.EQ, True),
        FieldPredicate("inactive_customer_ids", Operator.INTERSECTS, list(customer_ids)),
        FieldPredicate("inactive_line_item_ids", Operator.INTERSECTS, [line_item.id]),
    ))


def _check_profile_field(name: str) -> str:
    if name not in IDENTITY_PROFILE_FIELDS:
        raise InvalidFilterError(f"Unknown identity field '{name}'", field_name=name)
    return name
