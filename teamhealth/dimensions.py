from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from teamhealth.db import atomic
from teamhealth.errors import ConflictError, NotFoundError, ValidationError
from teamhealth.models import HealthDimension, utcnow

logger = logging.getLogger(__name__)


def _ensure_weight(weight: float) -> float:
    if weight <= 0:
        raise ValidationError("Invalid dimension weight", {"weight": "must be greater than 0"})
    return weight


class DimensionCatalog:
    """The fixed catalog of health dimensions. Dimensions are deactivated, never deleted."""

    def __init__(self, db: Session):
        self.db = db

    def list_dimensions(self, include_inactive: bool = False) -> list[HealthDimension]:
        stmt = select(HealthDimension).order_by(HealthDimension.id)
        if not include_inactive:
            stmt = stmt.where(HealthDimension.is_active.is_(True))
        return list(self.db.scalars(stmt))

    def get(self, dimension_id: str) -> HealthDimension:
        dimension = self.db.get(HealthDimension, dimension_id)
        if dimension is None:
            raise NotFoundError(f"Health dimension not found: {dimension_id}")
        return dimension

    def create(
        self,
        dimension_id: str,
        name: str,
        description: str | None = None,
        good_description: str = "",
        bad_description: str = "",
        weight: float = 1.0,
    ) -> HealthDimension:
        if not dimension_id.strip() or not name.strip():
            raise ValidationError(
                "Dimension id and name are required",
                {"id": "is required"} if not dimension_id.strip() else {"name": "is required"},
            )
        if self.db.get(HealthDimension, dimension_id) is not None:
            raise ConflictError(f"Health dimension already exists: {dimension_id}")
        with atomic(self.db):
            dimension = HealthDimension(
                id=dimension_id,
                name=name.strip(),
                description=description,
                good_description=good_description,
                bad_description=bad_description,
                weight=_ensure_weight(weight),
                is_active=True,
            )
            self.db.add(dimension)
        logger.info("Created health dimension %s", dimension_id)
        return dimension

    def update(
        self,
        dimension_id: str,
        name: str | None = None,
        description: str | None = None,
        good_description: str | None = None,
        bad_description: str | None = None,
        weight: float | None = None,
        is_active: bool | None = None,
    ) -> HealthDimension:
        with atomic(self.db):
            dimension = self.get(dimension_id)
            if name is not None:
                if not name.strip():
                    raise ValidationError("Dimension name is required", {"name": "is required"})
                dimension.name = name.strip()
            if description is not None:
                dimension.description = description
            if good_description is not None:
                dimension.good_description = good_description
            if bad_description is not None:
                dimension.bad_description = bad_description
            if weight is not None:
                dimension.weight = _ensure_weight(weight)
            if is_active is not None:
                dimension.is_active = is_active
            dimension.updated_at = utcnow()
        return dimension

    def deactivate(self, dimension_id: str) -> HealthDimension:
        return self.update(dimension_id, is_active=False)
