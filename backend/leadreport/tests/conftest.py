"""Pytest configuration for leadreport integration tests

WHAT: Temporary SQLite database, async store/service fixtures and a seeder
WHY: Qualification is mostly SQL; tests run it against a real (file) database
REFERENCES:
    - leadreport/database.py: build_session_factory
    - leadreport/services/store.py: ReportStore
    - leadreport/main.py: FastAPI application

NOTE:
    The schema is created and seeded through a sync engine; the code under
    test reads the same file through aiosqlite. The async engine uses
    NullPool so no connection outlives the event loop that opened it.
"""

import os
import uuid
from datetime import datetime
from typing import Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

# Set test environment before the app reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./leadreport-test.db")

from leadreport import models
from leadreport.database import Base, build_session_factory
from leadreport.services.qualification_service import QualificationService
from leadreport.services.store import ReportStore


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "leadreport.db"


@pytest.fixture
def sync_engine(db_path):
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(sync_engine) -> Generator[Session, None, None]:
    """Sync session used for seeding and for asserting on writes."""
    SessionLocal = sessionmaker(bind=sync_engine, autoflush=False, expire_on_commit=False)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def session_factory(sync_engine, db_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory) -> ReportStore:
    return ReportStore(session_factory)


@pytest.fixture
def service(store) -> QualificationService:
    return QualificationService(store)


# ============================================================================
# Seeding
# ============================================================================

class Seeder:
    """Creates rows through the ORM and commits each one."""

    def __init__(self, session: Session):
        self.session = session

    def _add(self, row):
        self.session.add(row)
        self.session.commit()
        return row

    def customer(self, name="Acme", parent: Optional[models.Customer] = None, deleted=False):
        return self._add(models.Customer(
            id=uuid.uuid4(), name=name, parent_id=parent.id if parent else None, deleted=deleted,
        ))

    def order(self, customer: models.Customer, name="Order"):
        return self._add(models.Order(id=uuid.uuid4(), name=name, customer_id=customer.id))

    def tag(self, name="Tag"):
        return self._add(models.Tag(id=uuid.uuid4(), name=name))

    def host(self, value="example.com", customer: Optional[models.Customer] = None, tags=()):
        host = models.ExtractedHost(
            id=uuid.uuid4(), value=value, customer_id=customer.id if customer else None,
        )
        host.tags = [models.ExtractedHostTag(tag_id=t.id) for t in tags]
        return self._add(host)

    def url(self, original, host, customer: Optional[models.Customer] = None, tags=(),
            link_type=models.LinkTypeEnum.editorial):
        url = models.TrackedUrl(
            id=uuid.uuid4(),
            original=original,
            resolved_host_id=host.id,
            customer_id=customer.id if customer else None,
            link_type=link_type,
        )
        url.tags = [models.TrackedUrlTag(tag_id=t.id) for t in tags]
        return self._add(url)

    def deployment(self, entity, sent_date: datetime, name=None):
        return self._add(models.EmailDeployment(
            id=uuid.uuid4(), entity=entity, name=name or entity, status="Sent", sent_date=sent_date,
        ))

    def deployment_url(self, url: models.TrackedUrl, deployment: models.EmailDeployment,
                       host: models.ExtractedHost):
        """Denormalised row, as the ingestion jobs write it."""
        return self._add(models.EmailDeploymentUrl(
            id=uuid.uuid4(),
            url_id=url.id,
            deployment_entity=deployment.entity,
            sent_date=deployment.sent_date,
            customer_id=url.customer_id,
            host_id=host.id,
            host_customer_id=host.customer_id,
            link_type=models.LinkTypeEnum(url.link_type).value,
        ))

    def line_item(self, order: models.Order, start: datetime, end: datetime, **targeting):
        values = {
            "tag_ids": [],
            "excluded_tag_ids": [],
            "link_types": [models.LinkTypeEnum.editorial.value],
            "excluded_urls": [],
            "identity_filters": [],
            "required_fields": [],
            "excluded_fields": [],
            "required_leads": 0,
        }
        values.update(targeting)
        for key in ("tag_ids", "excluded_tag_ids"):
            values[key] = [str(v) for v in values[key]]
        return self._add(models.LineItem(
            id=uuid.uuid4(), name="Line Item", order_id=order.id,
            range_start=start, range_end=end, **values,
        ))

    def identity(self, email="person@example.com", inactive=False,
                 inactive_customers: List[models.Customer] = (),
                 inactive_line_items: List[models.LineItem] = (), **profile):
        domain = email.split("@", 1)[1] if email and "@" in email else None
        identity = models.Identity(
            id=uuid.uuid4(),
            entity=f"ent-{uuid.uuid4().hex[:12]}",
            email_address=email,
            email_domain=domain,
            inactive=inactive,
            **profile,
        )
        identity.inactive_customers = [
            models.IdentityInactiveCustomer(customer_id=c.id) for c in inactive_customers
        ]
        identity.inactive_line_items = [
            models.IdentityInactiveLineItem(line_item_id=li.id) for li in inactive_line_items
        ]
        return self._add(identity)

    def click(self, identity, url, deployment, date: datetime, n=1, guids=()):
        return self._add(models.EmailClick(
            id=uuid.uuid4(),
            identity_id=identity.id,
            url_id=url.id,
            deployment_entity=deployment.entity,
            date=date,
            n=n,
            guids=list(guids) if guids is not None else None,
        ))

    def excluded_domain(self, domain):
        return self._add(models.ExcludedEmailDomain(id=uuid.uuid4(), domain=domain))


@pytest.fixture
def seed(db_session) -> Seeder:
    return Seeder(db_session)


class Scenario:
    """Handles to the rows of the standard reporting scenario."""


@pytest.fixture
def scenario(seed) -> Scenario:
    """
    Standard line item scenario.

    Customers: root (+ child, + deleted child), other (out of scope)
    Urls on deployments dep-1 (2024-01-05) and dep-2 (2024-01-10):
        url_root    root customer, tag "news"          -> eligible on dep-1, dep-2
        url_child   child customer, tag "news"         -> eligible on dep-1
        url_blocked root customer, tags "news","promo" -> excluded tag
        url_other   other customer, tag "news"         -> out of scope
    Identities clicking url_root on dep-1: alice, bob (active), carol (inactive)
    Line item: January 2024, tag "news", excluded tag "promo", Editorial, 2 leads
    """
    s = Scenario()
    s.root = seed.customer("Root")
    s.child = seed.customer("Child", parent=s.root)
    s.deleted_child = seed.customer("Deleted Child", parent=s.root, deleted=True)
    s.other = seed.customer("Other")
    s.order = seed.order(s.root)

    s.news = seed.tag("news")
    s.promo = seed.tag("promo")
    s.host = seed.host("news.example.com")

    s.url_root = seed.url("https://news.example.com/a", s.host, s.root, tags=[s.news])
    s.url_child = seed.url("https://news.example.com/b", s.host, s.child, tags=[s.news])
    s.url_blocked = seed.url("https://news.example.com/c", s.host, s.root, tags=[s.news, s.promo])
    s.url_other = seed.url("https://news.example.com/d", s.host, s.other, tags=[s.news])

    s.dep1 = seed.deployment("dep-1", datetime(2024, 1, 5, 9, 0))
    s.dep2 = seed.deployment("dep-2", datetime(2024, 1, 10, 9, 0))

    seed.deployment_url(s.url_root, s.dep1, s.host)
    seed.deployment_url(s.url_root, s.dep2, s.host)
    seed.deployment_url(s.url_child, s.dep1, s.host)
    seed.deployment_url(s.url_blocked, s.dep1, s.host)
    seed.deployment_url(s.url_other, s.dep1, s.host)

    s.line_item = seed.line_item(
        s.order,
        datetime(2024, 1, 1),
        datetime(2024, 1, 31),
        tag_ids=[s.news.id],
        excluded_tag_ids=[s.promo.id],
        required_leads=2,
    )

    s.alice = seed.identity("alice@acme.com", given_name="Alice")
    s.bob = seed.identity("bob@acme.com", given_name="Bob")
    s.carol = seed.identity("carol@acme.com", given_name="Carol", inactive=True)
    for identity in (s.alice, s.bob, s.carol):
        seed.click(identity, s.url_root, s.dep1, datetime(2024, 1, 6, 12, 0))
    return s


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(store):
    """FastAPI application reading the test database."""
    from leadreport.deps import get_report_store
    from leadreport.main import create_app

    test_app = create_app()
    test_app.dependency_overrides[get_report_store] = lambda: store
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
