"""
Criteria Executor
=================

Compiles predicate trees into SQLAlchemy clauses, and evaluates the same
trees against in-memory records.

WHY both?
- SQL compilation powers counts and id listings
- In-memory evaluation explains why a single identity was scrubbed
- Sharing the tree keeps both answers consistent

Field universe:
- IDENTITY_FIELDS: columns and inactive sets on `identities`
- DEPLOYMENT_URL_FIELDS: columns and tag sets on `email_deployment_urls`

Any field outside the universe, or an operator the field kind does not
support, raises InvalidFilterError.

Null semantics follow document-store negation: NE, NOT_IN, NOT_EMPTY and
NOT_MATCH_ANY pass when the field is missing (NULL). NOT_EMPTY only
rejects the empty string.

Related files:
- leadreport/criteria/schema.py: Predicate types
- leadreport/criteria/builder.py: Produces the trees
- leadreport/services/store.py: Runs the compiled clauses
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import and_, false, not_, or_, select, true

from leadreport import models
from leadreport.criteria.schema import (
    IDENTITY_PROFILE_FIELDS,
    AllOf,
    AnyOf,
    Criteria,
    FieldPredicate,
    Operator,
)
from leadreport.exceptions import InvalidFilterError

LIKE_ESCAPE = "\\"


class FieldKind(str, Enum):
    SCALAR = "scalar"
    TEXT = "text"
    SET = "set"


SCALAR_OPERATORS = {Operator.EQ, Operator.NE, Operator.IN, Operator.NOT_IN, Operator.GTE, Operator.LTE}
TEXT_OPERATORS = SCALAR_OPERATORS | {Operator.NOT_EMPTY, Operator.NOT_MATCH_ANY}
SET_OPERATORS = {Operator.INTERSECTS, Operator.NOT_INTERSECTS}


@dataclass(frozen=True)
class FieldSpec:
    """
    How a logical field maps onto the schema.

    Scalar/text fields map to a column. Set fields map to an association
    table: `link_owner == owner_key` selects the owner's rows and
    `link_value` holds the set members.
    """
    kind: FieldKind
    column: Any = None
    owner_key: Any = None
    link_owner: Any = None
    link_value: Any = None

    def supports(self, op: Operator) -> bool:
        if self.kind == FieldKind.SET:
            return op in SET_OPERATORS
        if self.kind == FieldKind.TEXT:
            return op in TEXT_OPERATORS
        return op in SCALAR_OPERATORS


def _set_field(owner_key, link_owner, link_value) -> FieldSpec:
    return FieldSpec(FieldKind.SET, owner_key=owner_key, link_owner=link_owner, link_value=link_value)


I = models.Identity
DU = models.EmailDeploymentUrl

IDENTITY_FIELDS: Dict[str, FieldSpec] = {
    "id": FieldSpec(FieldKind.SCALAR, I.id),
    "inactive": FieldSpec(FieldKind.SCALAR, I.inactive),
    "inactive_customer_ids": _set_field(
        I.id, models.IdentityInactiveCustomer.identity_id, models.IdentityInactiveCustomer.customer_id
    ),
    "inactive_line_item_ids": _set_field(
        I.id, models.IdentityInactiveLineItem.identity_id, models.IdentityInactiveLineItem.line_item_id
    ),
    **{name: FieldSpec(FieldKind.TEXT, getattr(I, name)) for name in IDENTITY_PROFILE_FIELDS},
}

DEPLOYMENT_URL_FIELDS: Dict[str, FieldSpec] = {
    "url_id": FieldSpec(FieldKind.SCALAR, DU.url_id),
    "deployment_entity": FieldSpec(FieldKind.SCALAR, DU.deployment_entity),
    "deployment.sent_date": FieldSpec(FieldKind.SCALAR, DU.sent_date),
    "customer_id": FieldSpec(FieldKind.SCALAR, DU.customer_id),
    "host.customer_id": FieldSpec(FieldKind.SCALAR, DU.host_customer_id),
    "link_type": FieldSpec(FieldKind.TEXT, DU.link_type),
    "tag_ids": _set_field(DU.url_id, models.TrackedUrlTag.url_id, models.TrackedUrlTag.tag_id),
    "host.tag_ids": _set_field(DU.host_id, models.ExtractedHostTag.host_id, models.ExtractedHostTag.tag_id),
}


# =====================================================================
# SQL compilation
# =====================================================================

def compile_criteria(criteria: Criteria, fields: Mapping[str, FieldSpec]):
    """
    Compile a predicate tree into a SQLAlchemy boolean clause.

    Example:
        >>> clause = compile_criteria(
        ...     FieldPredicate("inactive", Operator.EQ, False), IDENTITY_FIELDS
        ... )
        >>> select(models.Identity.id).where(clause)
    """
    if isinstance(criteria, AllOf):
        if not criteria.predicates:
            return true()
        return and_(*[compile_criteria(c, fields) for c in criteria.predicates])
    if isinstance(criteria, AnyOf):
        if not criteria.predicates:
            return false()
        return or_(*[compile_criteria(c, fields) for c in criteria.predicates])
    return _compile_predicate(criteria, fields)


def _compile_predicate(predicate: FieldPredicate, fields: Mapping[str, FieldSpec]):
    spec = _resolve(predicate, fields)
    op = predicate.op
    value = predicate.value

    if spec.kind == FieldKind.SET:
        members = (
            select(spec.link_owner)
            .where(
                spec.link_owner == spec.owner_key,
                spec.link_value.in_(list(value or [])),
            )
            .exists()
        )
        return members if op == Operator.INTERSECTS else not_(members)

    column = spec.column
    if op == Operator.EQ:
        return column.is_(None) if value is None else column == value
    if op == Operator.NE:
        return or_(column.is_(None), column != value)
    if op == Operator.IN:
        return column.in_(list(value or []))
    if op == Operator.NOT_IN:
        return or_(column.is_(None), column.not_in(list(value or [])))
    if op == Operator.GTE:
        return column >= value
    if op == Operator.LTE:
        return column <= value
    if op == Operator.NOT_EMPTY:
        return or_(column.is_(None), column != "")
    if op == Operator.NOT_MATCH_ANY:
        patterns = tuple(value or ())
        if not patterns:
            return true()
        matched = or_(*[column.ilike(p.like_pattern(), escape=LIKE_ESCAPE) for p in patterns])
        return or_(column.is_(None), not_(matched))
    raise InvalidFilterError(f"Unsupported operator '{op}'", field_name=predicate.field)


# =====================================================================
# In-memory evaluation
# =====================================================================

def evaluate_criteria(criteria: Criteria, record: Mapping[str, Any], fields: Mapping[str, FieldSpec]) -> bool:
    """Evaluate a predicate tree against a plain record (field name -> value)."""
    if isinstance(criteria, AllOf):
        return all(evaluate_criteria(c, record, fields) for c in criteria.predicates)
    if isinstance(criteria, AnyOf):
        return any(evaluate_criteria(c, record, fields) for c in criteria.predicates)
    return evaluate_predicate(criteria, record, fields)


def evaluate_predicate(predicate: FieldPredicate, record: Mapping[str, Any], fields: Mapping[str, FieldSpec]) -> bool:
    _resolve(predicate, fields)
    op = predicate.op
    value = predicate.value
    current = record.get(predicate.field)

    if op == Operator.INTERSECTS:
        return bool(_as_set(current) & _as_set(value))
    if op == Operator.NOT_INTERSECTS:
        return not (_as_set(current) & _as_set(value))
    if op == Operator.EQ:
        return current == value
    if op == Operator.NE:
        return current is None or current != value
    if op == Operator.IN:
        return current is not None and current in list(value or [])
    if op == Operator.NOT_IN:
        return current is None or current not in list(value or [])
    if op == Operator.GTE:
        return current is not None and current >= value
    if op == Operator.LTE:
        return current is not None and current <= value
    if op == Operator.NOT_EMPTY:
        return current != ""
    if op == Operator.NOT_MATCH_ANY:
        if current is None:
            return True
        return not any(p.matches(current) for p in (value or ()))
    raise InvalidFilterError(f"Unsupported operator '{op}'", field_name=predicate.field)


def identity_record(identity: models.Identity) -> Dict[str, Any]:
    """Flatten an Identity row into a record usable with IDENTITY_FIELDS."""
    record: Dict[str, Any] = {name: getattr(identity, name) for name in IDENTITY_PROFILE_FIELDS}
    record["id"] = identity.id
    record["inactive"] = bool(identity.inactive)
    record["inactive_customer_ids"] = list(identity.inactive_customer_ids)
    record["inactive_line_item_ids"] = list(identity.inactive_line_item_ids)
    return record


def _resolve(predicate: FieldPredicate, fields: Mapping[str, FieldSpec]) -> FieldSpec:
    spec: Optional[FieldSpec] = fields.get(predicate.field)
    if spec is None:
        raise InvalidFilterError(f"Unknown field '{predicate.field}'", field_name=predicate.field)
    if not spec.supports(predicate.op):
        raise InvalidFilterError(
            f"Operator '{predicate.op.value}' is not supported for field '{predicate.field}'",
            field_name=predicate.field,
        )
    return spec


def _as_set(values: Any) -> set:
    if values is None:
        return set()
    return {str(v) for v in values}
