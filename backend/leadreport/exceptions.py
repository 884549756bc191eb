"""
Reporting Exceptions
====================

Custom exception types for line item qualification and reporting.

WHY THIS FILE EXISTS
--------------------
Qualification counts are only meaningful when every referenced record
resolves. A missing order or customer must surface as an error instead of
silently producing "zero matches", and a malformed filter must fail the
filter build instead of being skipped.

Store failures (sqlalchemy.exc.SQLAlchemyError) are NOT wrapped here; they
propagate to the caller unchanged.

RELATED FILES
-------------
- leadreport/services/: raise these exceptions
- leadreport/criteria/: raises InvalidFilterError
- leadreport/main.py: maps them to HTTP status codes
"""

from typing import Any, Optional


class LeadReportError(Exception):
    """
    Base exception for all reporting errors.

    USAGE:
        try:
            counts = await service.get_qualified_identity_count(line_item)
        except LeadReportError as e:
            return {"error": str(e)}
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LeadReportError):
    """
    A record referenced by id does not exist.

    ATTRIBUTES:
        kind: Record type ("order", "customer", "identity", "line_item")
        record_id: The id that failed to resolve
    """

    def __init__(self, kind: str, record_id: Any, message: Optional[str] = None):
        self.kind = kind
        self.record_id = record_id
        if message is None:
            message = f"No {kind} record found for ID {record_id}."
        super().__init__(message)


class DataIntegrityError(NotFoundError):
    """
    A line item references an order or customer that cannot be resolved.

    WHAT:
        Raised while resolving the customer scope of a line item.

    WHY:
        A line item is never valid without a resolvable order and root
        customer. Treating it as an empty scope would misreport counts.
    """

    def __init__(self, kind: str, record_id: Any, line_item_id: Any):
        self.line_item_id = line_item_id
        super().__init__(
            kind,
            record_id,
            f"Line item {line_item_id} references a missing {kind} ({record_id}).",
        )


class InvalidFilterError(LeadReportError):
    """
    A criteria predicate or identity filter cannot be built.

    Raised for unknown field names, unsupported match types and operators
    that the target field does not support.
    """

    def __init__(self, message: str, field_name: Optional[str] = None):
        self.field_name = field_name
        super().__init__(message)


class InvalidLineItemError(LeadReportError):
    """A stored line item configuration failed validation."""

    def __init__(self, line_item_id: Any, errors: Any = None):
        self.line_item_id = line_item_id
        self.errors = errors or []
        super().__init__(f"Line item {line_item_id} has an invalid targeting configuration.")
