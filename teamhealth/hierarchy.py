"""Ordered hierarchy levels with contiguous positions.

Positions always form ``1..N`` (1 is the most senior level). Every mutation that
touches positions runs inside one transaction and reads the rows it is about to
rewrite with ``SELECT ... FOR UPDATE``, so two admins moving levels at the same
time cannot land two levels on the same position. The unique constraint on
``position`` stays in force throughout: rows are parked at position 0 or at
negative positions while a band is renumbered, never on a live position.
"""

from __future__ import annotations

import logging
import os
import uuid

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from teamhealth.db import atomic
from teamhealth.errors import ConflictError, NotFoundError, ValidationError
from teamhealth.models import HierarchyLevel, PERMISSION_FIELDS, TeamSupervisor, User, utcnow
from teamhealth.schemas import Permissions

logger = logging.getLogger(__name__)

MOVE_DIRECTIONS = ("up", "down")
PARKED_POSITION = 0


def get_team_member_level_id() -> str:
    return os.getenv("TEAM_MEMBER_LEVEL_ID", "level-5")


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Hierarchy level name is required", {"name": "must not be empty"})
    if len(cleaned) > 100:
        raise ValidationError("Hierarchy level name is too long", {"name": "must be at most 100 characters"})
    return cleaned


class HierarchyLevelStore:
    def __init__(self, db: Session):
        self.db = db

    def list_levels(self) -> list[HierarchyLevel]:
        return list(
            self.db.scalars(
                select(HierarchyLevel)
                .order_by(HierarchyLevel.position)
                .execution_options(populate_existing=True)
            )
        )

    def get(self, level_id: str) -> HierarchyLevel:
        level = self.db.get(HierarchyLevel, level_id)
        if level is None:
            raise NotFoundError(f"Hierarchy level not found: {level_id}")
        return level

    def create(
        self,
        name: str,
        permissions: Permissions | None = None,
        color: str | None = None,
        position: int | None = None,
        level_id: str | None = None,
        deadline: float | None = None,
    ) -> HierarchyLevel:
        """Add a level at the bottom, or at an explicit position pushing the rest down."""
        cleaned = _clean_name(name)
        permissions = permissions or Permissions()
        if level_id is not None and self.db.get(HierarchyLevel, level_id) is not None:
            raise ConflictError(f"Hierarchy level already exists: {level_id}")
        with atomic(self.db, deadline):
            max_position = self._locked_max_position()
            if position is None:
                position = max_position + 1
            elif not 1 <= position <= max_position + 1:
                raise ValidationError(
                    "Invalid hierarchy position",
                    {"position": f"must be between 1 and {max_position + 1}"},
                )
            elif position <= max_position:
                self._shift_range(position, max_position, 1)

            level = HierarchyLevel(
                id=level_id or f"level-{uuid.uuid4().hex[:12]}",
                name=cleaned,
                position=position,
                color=color or None,
                **permissions.model_dump(),
            )
            self.db.add(level)
            self.db.flush()
        logger.info("Created hierarchy level %s at position %d", level.id, level.position)
        return level

    def update(
        self,
        level_id: str,
        name: str | None = None,
        color: str | None = None,
        permissions: Permissions | None = None,
        deadline: float | None = None,
    ) -> HierarchyLevel:
        with atomic(self.db, deadline):
            level = self._get_for_update(level_id)
            if name is not None:
                level.name = _clean_name(name)
            if color is not None:
                level.color = color or None
            if permissions is not None:
                for field in PERMISSION_FIELDS:
                    setattr(level, field, getattr(permissions, field))
            level.updated_at = utcnow()
        return level

    def move(self, level_id: str, direction: str, deadline: float | None = None) -> None:
        """Swap a level with its neighbour above ("up") or below ("down").

        Moving the first level up or the last level down leaves everything as is.
        """
        if direction not in MOVE_DIRECTIONS:
            raise ValidationError("Invalid move direction", {"direction": "must be 'up' or 'down'"})
        with atomic(self.db, deadline):
            level = self._get_for_update(level_id)
            neighbour_position = level.position - 1 if direction == "up" else level.position + 1
            neighbour = self.db.scalar(
                select(HierarchyLevel)
                .where(HierarchyLevel.position == neighbour_position)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if neighbour is None:
                logger.info("Hierarchy level %s already at the %s boundary", level_id, direction)
                return
            self._swap(level, neighbour)
        logger.info("Moved hierarchy level %s %s to position %d", level_id, direction, level.position)

    def move_to(self, level_id: str, new_position: int, deadline: float | None = None) -> HierarchyLevel:
        with atomic(self.db, deadline):
            level = self._get_for_update(level_id)
            max_position = self._locked_max_position()
            if not 1 <= new_position <= max_position:
                raise ValidationError(
                    "Invalid hierarchy position",
                    {"position": f"must be between 1 and {max_position}"},
                )
            old_position = level.position
            if new_position == old_position:
                return level
            now = utcnow()
            level.position = PARKED_POSITION
            self.db.flush()
            if new_position < old_position:
                self._shift_range(new_position, old_position - 1, 1)
            else:
                self._shift_range(old_position + 1, new_position, -1)
            level.position = new_position
            level.updated_at = now
            self.db.flush()
        logger.info("Moved hierarchy level %s from position %d to %d", level_id, old_position, new_position)
        return level

    def delete(self, level_id: str, deadline: float | None = None) -> None:
        """Remove an unused level and close the gap it leaves."""
        if level_id == get_team_member_level_id():
            raise ValidationError(
                "The team member level cannot be deleted",
                {"id": "is the team member level"},
            )
        with atomic(self.db, deadline):
            level = self._get_for_update(level_id)
            user_count = self.db.scalar(
                select(func.count(User.id)).where(User.hierarchy_level_id == level_id)
            ) or 0
            if user_count:
                raise ConflictError(f"Cannot delete hierarchy level: level still has {user_count} assigned users")
            chain_count = self.db.scalar(
                select(func.count()).select_from(TeamSupervisor).where(TeamSupervisor.hierarchy_level_id == level_id)
            ) or 0
            if chain_count:
                raise ConflictError(
                    f"Cannot delete hierarchy level: level still appears in {chain_count} supervisor chain entries"
                )
            max_position = self._locked_max_position()
            deleted_position = level.position
            self.db.delete(level)
            self.db.flush()
            if deleted_position < max_position:
                self._shift_range(deleted_position + 1, max_position, -1)
        logger.info("Deleted hierarchy level %s from position %d", level_id, deleted_position)

    def _get_for_update(self, level_id: str) -> HierarchyLevel:
        level = self.db.scalar(
            select(HierarchyLevel)
            .where(HierarchyLevel.id == level_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if level is None:
            raise NotFoundError(f"Hierarchy level not found: {level_id}")
        return level

    def _locked_max_position(self) -> int:
        # Locks the bottom row; an empty table falls back to the unique constraint.
        top = self.db.scalar(
            select(HierarchyLevel.position)
            .order_by(HierarchyLevel.position.desc())
            .limit(1)
            .with_for_update()
        )
        return top or 0

    def _swap(self, level: HierarchyLevel, neighbour: HierarchyLevel) -> None:
        now = utcnow()
        level_position, neighbour_position = level.position, neighbour.position
        level.position = PARKED_POSITION
        self.db.flush()
        neighbour.position = level_position
        neighbour.updated_at = now
        self.db.flush()
        level.position = neighbour_position
        level.updated_at = now
        self.db.flush()

    def _shift_range(self, start: int, end: int, delta: int) -> None:
        """Add ``delta`` to every position in ``[start, end]``.

        Runs in two statements: the band is first written as negative target
        positions, then flipped back, so no row ever collides with another while
        the update is in flight.
        """
        if start > end or delta == 0:
            return
        now = utcnow()
        self.db.execute(
            update(HierarchyLevel)
            .where(HierarchyLevel.position >= start, HierarchyLevel.position <= end)
            .values(position=-(HierarchyLevel.position + delta), updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        self.db.execute(
            update(HierarchyLevel)
            .where(HierarchyLevel.position >= -(end + delta), HierarchyLevel.position <= -(start + delta))
            .values(position=-HierarchyLevel.position)
            .execution_options(synchronize_session="fetch")
        )
