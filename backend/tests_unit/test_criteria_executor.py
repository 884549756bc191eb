"""
Criteria Executor Tests (Unit)
==============================

WHAT: In-memory evaluation of predicate trees and SQL compilation shape.
WHY: Scrub explanations evaluate in memory while counts run in SQL; both must
     apply the same null and matching rules.

REFERENCES:
- backend/leadreport/criteria/executor.py
"""

import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import sqlite

from leadreport import models
from leadreport.criteria.executor import (
    DEPLOYMENT_URL_FIELDS,
    IDENTITY_FIELDS,
    compile_criteria,
    evaluate_criteria,
    evaluate_predicate,
)
from leadreport.criteria.schema import AllOf, AnyOf, FieldPredicate, MatchType, Operator, TermPattern
from leadreport.exceptions import InvalidFilterError
from leadreport.services.qualification_service import iter_predicates, scrub_reason


def evaluate(predicate, **record):
    return evaluate_predicate(predicate, record, IDENTITY_FIELDS)


def compiled_sql(criteria, fields, model) -> str:
    stmt = select(model.id).where(compile_criteria(criteria, fields))
    return str(stmt.compile(dialect=sqlite.dialect()))


# =============================================================================
# EVALUATION
# =============================================================================

def test_not_match_any_passes_missing_values() -> None:
    predicate = FieldPredicate(
        "company_name", Operator.NOT_MATCH_ANY, (TermPattern(MatchType.CONTAINS, "test"),)
    )

    assert evaluate(predicate, company_name=None)
    assert evaluate(predicate, company_name="Acme")
    assert not evaluate(predicate, company_name="Test Corp")


def test_not_empty_rejects_only_the_empty_string() -> None:
    predicate = FieldPredicate("title", Operator.NOT_EMPTY)

    assert evaluate(predicate, title="Editor")
    assert not evaluate(predicate, title="")
    assert evaluate(predicate, title=None)


def test_not_empty_compiles_to_a_null_tolerant_clause() -> None:
    sql = compiled_sql(FieldPredicate("title", Operator.NOT_EMPTY), IDENTITY_FIELDS, models.Identity)

    assert "identities.title IS NULL OR identities.title !=" in sql


def test_set_predicates_compare_ids_by_string() -> None:
    customer_id = uuid.uuid4()
    predicate = FieldPredicate("inactive_customer_ids", Operator.NOT_INTERSECTS, [customer_id])

    assert not evaluate(predicate, inactive_customer_ids=[str(customer_id)])
    assert evaluate(predicate, inactive_customer_ids=[uuid.uuid4()])
    assert evaluate(predicate, inactive_customer_ids=None)


def test_not_in_passes_missing_values() -> None:
    predicate = FieldPredicate("email_domain", Operator.NOT_IN, ["spam.com"])

    assert evaluate(predicate, email_domain=None)
    assert evaluate(predicate, email_domain="acme.com")
    assert not evaluate(predicate, email_domain="spam.com")


def test_empty_all_of_is_true_and_empty_any_of_is_false() -> None:
    assert evaluate_criteria(AllOf(()), {}, IDENTITY_FIELDS) is True
    assert evaluate_criteria(AnyOf(()), {}, IDENTITY_FIELDS) is False


def test_unknown_field_raises() -> None:
    with pytest.raises(InvalidFilterError) as exc_info:
        evaluate(FieldPredicate("password", Operator.EQ, "x"))
    assert exc_info.value.field_name == "password"


def test_operator_must_fit_the_field_kind() -> None:
    with pytest.raises(InvalidFilterError):
        evaluate(FieldPredicate("inactive", Operator.INTERSECTS, [True]))
    with pytest.raises(InvalidFilterError):
        compile_criteria(FieldPredicate("tag_ids", Operator.EQ, "x"), DEPLOYMENT_URL_FIELDS)


# =============================================================================
# SQL COMPILATION
# =============================================================================

def test_set_predicate_compiles_to_correlated_exists() -> None:
    criteria = FieldPredicate("tag_ids", Operator.NOT_INTERSECTS, [uuid.uuid4()])

    sql = compiled_sql(criteria, DEPLOYMENT_URL_FIELDS, models.EmailDeploymentUrl)

    assert "NOT" in sql
    assert "EXISTS" in sql
    assert "tracked_url_tags" in sql


def test_term_patterns_compile_to_escaped_like() -> None:
    criteria = FieldPredicate(
        "email_address", Operator.NOT_MATCH_ANY, (TermPattern(MatchType.STARTS, "a_b"),)
    )

    sql = compiled_sql(criteria, IDENTITY_FIELDS, models.Identity)

    assert "LIKE" in sql
    assert "ESCAPE" in sql
    assert "identities.email_address IS NULL" in sql


# =============================================================================
# SCRUB REASONS
# =============================================================================

def test_scrub_reasons_by_predicate() -> None:
    assert scrub_reason(FieldPredicate("inactive", Operator.EQ, False)) == "inactive"
    assert scrub_reason(FieldPredicate("email_domain", Operator.NOT_IN, ["x"])) == "excluded_domain"
    assert scrub_reason(FieldPredicate("title", Operator.NOT_EMPTY)) == "missing:title"
    assert scrub_reason(FieldPredicate("title", Operator.NOT_MATCH_ANY, ())) == "filtered:title"


def test_iter_predicates_flattens_nested_trees() -> None:
    a = FieldPredicate("inactive", Operator.EQ, False)
    b = FieldPredicate("title", Operator.NOT_EMPTY)
    c = FieldPredicate("city", Operator.NOT_EMPTY)

    assert list(iter_predicates(AllOf((a, AllOf((b, AnyOf((c,)))))))) == [a, b, c]
