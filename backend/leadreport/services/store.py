"""
Report Store
============

Async store access layer used by every reporting component.

WHAT: Typed find / find_by_id / distinct / count / aggregate operations
WHY: Components build criteria; the store only runs them
HOW: Each call opens its own AsyncSession from the session factory

Design:
- One session per query: independent queries can be awaited together with
  asyncio.gather without sharing a session (AsyncSession is not safe for
  concurrent use)
- Read consistency is per query only; a pipeline may observe data changing
  between stages, which is acceptable for point-in-time reports
- No retry: SQLAlchemyError propagates to the caller unchanged

Usage:
    >>> store = ReportStore(get_session_factory())
    >>> count = await store.count(models.Identity, models.Identity.inactive.is_(False))
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence

from sqlalchemy import Select, and_, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from leadreport import models

logger = logging.getLogger(__name__)


def distinct_values(values: Iterable[Any]) -> List[Any]:
    """Drop repeated values, keeping first-seen order."""
    return list(dict.fromkeys(values))


class ReportStore:
    """Thin async query runner over an `async_sessionmaker`."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def find_by_id(self, model, record_id: Any, options: Sequence[Any] = ()) -> Optional[Any]:
        """Load one row by primary key, or None."""
        async with self._session_factory() as session:
            return await session.get(model, record_id, options=list(options) or None)

    async def find(
        self,
        model,
        where: Any = None,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
        options: Sequence[Any] = (),
    ) -> List[Any]:
        """Load full rows of `model` matching `where`."""
        stmt = select(model)
        if where is not None:
            stmt = stmt.where(where)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit:
            stmt = stmt.limit(limit)
        if options:
            stmt = stmt.options(*options)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = list(result.scalars().all())
        logger.debug(f"[STORE] find {model.__name__}: {len(rows)} rows")
        return rows

    async def project(
        self,
        columns: Sequence[Any],
        where: Any = None,
        order_by: Sequence[Any] = (),
        limit: Optional[int] = None,
    ) -> List[Any]:
        """Load only the given columns. Returns Row tuples."""
        stmt = select(*columns)
        if where is not None:
            stmt = stmt.where(where)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit:
            stmt = stmt.limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.all())

    async def distinct(self, column: Any, where: Any = None) -> List[Any]:
        """Distinct values of `column` among rows matching `where`."""
        stmt = select(column).distinct()
        if where is not None:
            stmt = stmt.where(where)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count(self, model, where: Any = None) -> int:
        stmt = select(func.count()).select_from(model)
        if where is not None:
            stmt = stmt.where(where)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def aggregate(self, statement: Any) -> List[Any]:
        """Run a prepared (grouped) select statement and return its rows."""
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return list(result.all())

    async def modify(self, model, record_id: Any, apply: Callable[[Any], None]) -> Optional[Any]:
        """
        Load a row, apply an in-place change and commit.

        Returns the updated row, or None when no row has that id.
        """
        async with self._session_factory() as session:
            instance = await session.get(model, record_id)
            if instance is None:
                return None
            apply(instance)
            await session.commit()
            return instance

    # ------------------------------------------------------------------
    # Typed lookups used by the reporting components
    # ------------------------------------------------------------------

    async def find_line_item(self, line_item_id: Any) -> Optional[models.LineItem]:
        return await self.find_by_id(models.LineItem, line_item_id)

    async def find_order(self, order_id: Any) -> Optional[models.Order]:
        return await self.find_by_id(models.Order, order_id)

    async def find_customer(self, customer_id: Any) -> Optional[models.Customer]:
        return await self.find_by_id(models.Customer, customer_id)

    async def distinct_child_customer_ids(self, parent_id: Any) -> List[Any]:
        """Direct, non-deleted children of a customer."""
        return await self.distinct(
            models.Customer.id,
            and_(models.Customer.parent_id == parent_id, models.Customer.deleted.is_(False)),
        )

    async def distinct_excluded_domains(self) -> List[str]:
        return await self.distinct(models.ExcludedEmailDomain.domain)

    async def find_deployment_urls(
        self,
        where: Any,
        order_by: Sequence[Any] = (),
        with_relations: bool = False,
    ) -> List[models.EmailDeploymentUrl]:
        """Deployment url rows; `with_relations` eager-loads url and deployment."""
        options = ()
        if with_relations:
            options = (
                selectinload(models.EmailDeploymentUrl.url),
                selectinload(models.EmailDeploymentUrl.deployment),
            )
        return await self.find(models.EmailDeploymentUrl, where, order_by=order_by, options=options)

    @staticmethod
    def click_identity_query(
        url_ids: Sequence[Any],
        deployment_entities: Sequence[str],
        start: Any,
        end: Any,
    ) -> Select:
        """
        Identities with at least one click on the given urls/deployments in [start, end].

        The url and deployment lists are deduplicated before binding, so the
        statement carries one parameter per distinct url and deployment. It can
        run on its own or be embedded as an `IN (SELECT ...)` subquery.
        """
        click = models.EmailClick
        return (
            select(click.identity_id)
            .where(
                click.url_id.in_(distinct_values(url_ids)),
                click.deployment_entity.in_(distinct_values(deployment_entities)),
                click.date >= start,
                click.date <= end,
            )
            .group_by(click.identity_id)
            .correlate(None)
        )

    async def distinct_click_identity_ids(
        self,
        url_ids: Sequence[Any],
        deployment_entities: Sequence[str],
        start: Any,
        end: Any,
    ) -> List[Any]:
        stmt = self.click_identity_query(url_ids, deployment_entities, start, end)
        return [row[0] for row in await self.aggregate(stmt)]

    async def count_identities(self, where: Any) -> int:
        return await self.count(models.Identity, where)

    async def find_identity_ids(self, where: Any, limit: Optional[int] = None) -> List[Any]:
        """Identity ids in natural order, capped at `limit` when it is positive."""
        rows = await self.project([models.Identity.id], where, limit=limit)
        return [row[0] for row in rows]

    async def distinct_identity_ids(self, where: Any) -> List[Any]:
        return await self.distinct(models.Identity.id, where)

    async def find_identity(self, identity_id: Any) -> Optional[models.Identity]:
        return await self.find_by_id(models.Identity, identity_id)

    async def find_identities(self, where: Any) -> List[models.Identity]:
        return await self.find(models.Identity, where)

    async def save_identity(
        self, identity_id: Any, apply: Callable[[models.Identity], None]
    ) -> Optional[models.Identity]:
        """Apply an in-place change to an identity and commit it."""
        return await self.modify(models.Identity, identity_id, apply)
