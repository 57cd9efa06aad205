"""Reporting-line resolution over the ``users.reports_to`` parent pointer."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from teamhealth.db import atomic
from teamhealth.errors import DataIntegrityError, NotFoundError, ValidationError
from teamhealth.models import User

logger = logging.getLogger(__name__)


class OrgTreeResolver:
    def __init__(self, db: Session):
        self.db = db

    def direct_reports(self, user_id: str) -> list[str]:
        return list(self.db.scalars(select(User.id).where(User.reports_to == user_id).order_by(User.id)))

    def subordinates(self, user_id: str) -> set[str]:
        """Everyone whose reports-to chain eventually reaches ``user_id``.

        Expands one level of depth per query until the frontier is empty, so the
        organisation can be arbitrarily deep. A user reachable from itself means
        the stored tree has a cycle, which is reported instead of looped over.
        """
        found: set[str] = set()
        frontier = {user_id}
        while frontier:
            reports = self.db.scalars(select(User.id).where(User.reports_to.in_(frontier))).all()
            next_frontier: set[str] = set()
            for report_id in reports:
                if report_id == user_id:
                    logger.error("Reports-to cycle detected through user %s", user_id)
                    raise DataIntegrityError(f"Reports-to cycle detected through user {user_id}")
                if report_id in found:
                    continue
                found.add(report_id)
                next_frontier.add(report_id)
            frontier = next_frontier
        return found

    def reporting_chain(self, user_id: str) -> list[str]:
        """Managers above ``user_id``, nearest first."""
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        chain: list[str] = []
        seen = {user_id}
        manager_id = user.reports_to
        while manager_id is not None:
            if manager_id in seen:
                logger.error("Reports-to cycle detected above user %s at %s", user_id, manager_id)
                raise DataIntegrityError(f"Reports-to cycle detected above user {user_id}")
            seen.add(manager_id)
            chain.append(manager_id)
            manager_id = self.db.scalar(select(User.reports_to).where(User.id == manager_id))
        return chain

    def set_reports_to(self, user_id: str, manager_id: str | None, deadline: float | None = None) -> None:
        """Re-point a user's manager, refusing edits that would close a loop.

        Supervisor chains are left alone; ``UserStore.update`` re-points and
        rebuilds the affected chains in one transaction.
        """
        with atomic(self.db, deadline):
            self.assign_manager(user_id, manager_id)
        logger.info("User %s now reports to %s", user_id, manager_id)

    def assign_manager(self, user_id: str, manager_id: str | None) -> User:
        """Validate and apply a reports-to edit inside the caller's transaction."""
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        if manager_id is not None:
            if self.db.get(User, manager_id) is None:
                raise NotFoundError(f"User not found: {manager_id}")
            if manager_id == user_id or manager_id in self.subordinates(user_id):
                raise ValidationError(
                    "A user cannot report to themselves or to one of their reports",
                    {"reports_to": "would create a reporting cycle"},
                )
        user.reports_to = manager_id
        return user
