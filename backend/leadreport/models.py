"""SQLAlchemy ORM models and enums.

This module defines the reporting schema using UUID primary keys and explicit
relationships. Email platform data (deployments, deployment urls, clicks) is
written by the ingestion jobs; the reporting core only reads it.

`EmailDeploymentUrl` is a denormalised read view over tracked urls, their
hosts and the deployments they appeared in. Its customer/link type/host
columns are kept in sync by ingestion so eligibility can be resolved without
extra joins.
"""

import uuid
from datetime import datetime
import enum

from sqlalchemy import Column, String, DateTime, Enum, Integer, ForeignKey, JSON, Boolean, UniqueConstraint, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()


# Enums ---------------------------------------------------------

class LinkTypeEnum(str, enum.Enum):
    not_set = "(Not Set)"
    advertising = "Advertising"
    editorial = "Editorial"


# Customers & orders ----------------------------------------------

class Customer(Base):
    """Customer (advertiser) account.

    Customers form a hierarchy via `parent_id`. Reporting widens a line item's
    scope to the root customer plus its direct, non-deleted children.
    """
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)
    deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    parent = relationship("Customer", remote_side=[id], backref="children")
    orders = relationship("Order", back_populates="customer")

    def __str__(self):
        return self.name


class Order(Base):
    """An insertion order. One order owns many line items."""
    __tablename__ = "orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    customer = relationship("Customer", back_populates="orders")
    line_items = relationship("LineItem", back_populates="order")

    def __str__(self):
        return self.name


class LineItem(Base):
    """Email line item: audience targeting configuration tied to an order.

    Targeting settings are stored as JSON and validated into
    `leadreport.criteria.schema.LineItemTargeting` when loaded.
    """
    __tablename__ = "line_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)

    range_start = Column(DateTime, nullable=False)
    range_end = Column(DateTime, nullable=False)
    required_leads = Column(Integer, nullable=False, default=0)

    tag_ids = Column(JSON, nullable=False, default=list)
    excluded_tag_ids = Column(JSON, nullable=False, default=list)
    link_types = Column(JSON, nullable=False, default=list)
    excluded_urls = Column(JSON, nullable=False, default=list)  # [{"url_id": ..., "deployment_entity": ...}]
    identity_filters = Column(JSON, nullable=False, default=list)  # [{"key": ..., "match_type": ..., "terms": [...]}]
    required_fields = Column(JSON, nullable=False, default=list)
    excluded_fields = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="line_items")

    def __str__(self):
        return self.name


# Tags, hosts & urls ----------------------------------------------

class Tag(Base):
    __tablename__ = "tags"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)

    def __str__(self):
        return self.name


class ExtractedHost(Base):
    """Resolved host of a tracked url. May carry its own customer and tags."""
    __tablename__ = "extracted_hosts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    value = Column(String, nullable=False, unique=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)

    tags = relationship("ExtractedHostTag", cascade="all, delete-orphan")

    def __str__(self):
        return self.value


class ExtractedHostTag(Base):
    __tablename__ = "extracted_host_tags"

    host_id = Column(UUID(as_uuid=True), ForeignKey("extracted_hosts.id"), primary_key=True)
    tag_id = Column(UUID(as_uuid=True), ForeignKey("tags.id"), primary_key=True)


class TrackedUrl(Base):
    """A url extracted from email content.

    `original` holds the canonicalised url string and is unique.
    """
    __tablename__ = "tracked_urls"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    original = Column(String, nullable=False, unique=True)
    resolved = Column(String, nullable=True)
    title = Column(String, nullable=True)
    link_type = Column(
        Enum(LinkTypeEnum, values_callable=lambda obj: [e.value for e in obj]),
        default=LinkTypeEnum.not_set,
        nullable=False,
    )
    resolved_host_id = Column(UUID(as_uuid=True), ForeignKey("extracted_hosts.id"), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)

    host = relationship("ExtractedHost")
    tags = relationship("TrackedUrlTag", cascade="all, delete-orphan")

    def __str__(self):
        return self.original


class TrackedUrlTag(Base):
    __tablename__ = "tracked_url_tags"

    url_id = Column(UUID(as_uuid=True), ForeignKey("tracked_urls.id"), primary_key=True)
    tag_id = Column(UUID(as_uuid=True), ForeignKey("tags.id"), primary_key=True)


# Email platform data ----------------------------------------------

class EmailDeployment(Base):
    """A single send event on the external email platform, keyed by `entity`."""
    __tablename__ = "email_deployments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    status = Column(String, nullable=True, index=True)
    sent_date = Column(DateTime, nullable=True, index=True)

    def __str__(self):
        return self.entity


class EmailDeploymentUrl(Base):
    """Read view linking a tracked url to a deployment it appeared in.

    WHAT: Denormalises the url's customer/link type and its host's customer
    WHY: Eligibility filters on all of them in a single query
    Tags are resolved through `tracked_url_tags` / `extracted_host_tags`.
    """
    __tablename__ = "email_deployment_urls"
    __table_args__ = (
        UniqueConstraint("url_id", "deployment_entity", name="uq_deployment_url"),
        Index("ix_deployment_urls_sent_date", "sent_date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    url_id = Column(UUID(as_uuid=True), ForeignKey("tracked_urls.id"), nullable=False)
    deployment_entity = Column(String, ForeignKey("email_deployments.entity"), nullable=False, index=True)
    sent_date = Column(DateTime, nullable=True)

    customer_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    host_id = Column(UUID(as_uuid=True), ForeignKey("extracted_hosts.id"), nullable=False)
    host_customer_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    link_type = Column(String, nullable=False, default=LinkTypeEnum.not_set.value)

    url = relationship("TrackedUrl")
    deployment = relationship("EmailDeployment")


class EmailClick(Base):
    """One click record (or de-duplicated click burst) for an identity.

    Total clicks for the record are `n + len(guids)`. `guids=None` is stored
    as SQL NULL and counts as an empty list.
    """
    __tablename__ = "email_clicks"
    __table_args__ = (
        Index("ix_email_clicks_lookup", "url_id", "deployment_entity", "date"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    identity_id = Column(UUID(as_uuid=True), ForeignKey("identities.id"), nullable=False, index=True)
    url_id = Column(UUID(as_uuid=True), ForeignKey("tracked_urls.id"), nullable=False)
    deployment_entity = Column(String, ForeignKey("email_deployments.entity"), nullable=False)
    date = Column(DateTime, nullable=False)
    n = Column(Integer, nullable=False, default=0)
    guids = Column(JSON(none_as_null=True), nullable=True, default=list)


# Identities --------------------------------------------------------

class Identity(Base):
    """An end user profile accumulating click history.

    Deactivation:
    - `inactive`: global opt-out
    - `inactive_customers`: opted out for specific customers
    - `inactive_line_items`: opted out for specific line items
    """
    __tablename__ = "identities"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity = Column(String, nullable=True, unique=True)  # External platform identifier
    email_address = Column(String, nullable=True)
    email_domain = Column(String, nullable=True, index=True)
    given_name = Column(String, nullable=True)
    family_name = Column(String, nullable=True)
    title = Column(String, nullable=True)
    company_name = Column(String, nullable=True)
    organization_type = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)
    street = Column(String, nullable=True)
    city = Column(String, nullable=True)
    region = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    country = Column(String, nullable=True)
    inactive = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    inactive_customers = relationship(
        "IdentityInactiveCustomer", cascade="all, delete-orphan", lazy="selectin"
    )
    inactive_line_items = relationship(
        "IdentityInactiveLineItem", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def inactive_customer_ids(self):
        return [row.customer_id for row in self.inactive_customers]

    @property
    def inactive_line_item_ids(self):
        return [row.line_item_id for row in self.inactive_line_items]

    def __str__(self):
        return self.email_address or str(self.id)


class IdentityInactiveCustomer(Base):
    __tablename__ = "identity_inactive_customers"

    identity_id = Column(UUID(as_uuid=True), ForeignKey("identities.id"), primary_key=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), primary_key=True)


class IdentityInactiveLineItem(Base):
    __tablename__ = "identity_inactive_line_items"

    identity_id = Column(UUID(as_uuid=True), ForeignKey("identities.id"), primary_key=True)
    line_item_id = Column(UUID(as_uuid=True), ForeignKey("line_items.id"), primary_key=True)


class ExcludedEmailDomain(Base):
    """Denylisted email domain. Every identity on the domain is scrubbed."""
    __tablename__ = "excluded_email_domains"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    domain = Column(String, nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __str__(self):
        return self.domain
