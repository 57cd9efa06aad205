from __future__ import annotations

import logging
import re
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from teamhealth.db import atomic
from teamhealth.errors import ConflictError, NotFoundError, ValidationError
from teamhealth.models import HierarchyLevel, User
from teamhealth.org_tree import OrgTreeResolver
from teamhealth.schemas import UNCHANGED
from teamhealth.scope import SupervisorScopeResolver

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]{3,50}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class UserStore:
    """User administration. Level and reports-to edits rebuild the supervisor
    chains of every team that depends on the user, in the same transaction."""

    def __init__(self, db: Session, scope: SupervisorScopeResolver | None = None):
        self.db = db
        self.scope = scope or SupervisorScopeResolver(db)
        self.org_tree = OrgTreeResolver(db)

    def list_users(self) -> list[User]:
        return list(self.db.scalars(select(User).order_by(User.username)))

    def get(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    def create(
        self,
        username: str,
        email: str,
        full_name: str,
        hierarchy_level_id: str,
        reports_to: str | None = None,
        user_id: str | None = None,
        deadline: float | None = None,
    ) -> User:
        errors: dict[str, str] = {}
        if not USERNAME_PATTERN.match(username or ""):
            errors["username"] = "must be 3-50 letters, digits, '.', '_' or '-'"
        if not EMAIL_PATTERN.match(email or ""):
            errors["email"] = "must be a valid email address"
        if self.db.get(HierarchyLevel, hierarchy_level_id) is None:
            errors["hierarchy_level_id"] = f"unknown hierarchy level {hierarchy_level_id}"
        if reports_to is not None and self.db.get(User, reports_to) is None:
            errors["reports_to"] = f"unknown user {reports_to}"
        if errors:
            raise ValidationError("Invalid user", errors)

        with atomic(self.db, deadline):
            self._ensure_unique(username, email)
            user = User(
                id=user_id or f"user-{uuid.uuid4().hex[:12]}",
                username=username,
                email=email,
                full_name=(full_name or "").strip(),
                hierarchy_level_id=hierarchy_level_id,
                reports_to=reports_to,
            )
            self.db.add(user)
            self.db.flush()
        logger.info("Created user %s at level %s", user.id, hierarchy_level_id)
        return user

    def update(
        self,
        user_id: str,
        full_name: str | None = None,
        email: str | None = None,
        hierarchy_level_id: str | None = None,
        reports_to=UNCHANGED,
        deadline: float | None = None,
    ) -> User:
        with atomic(self.db, deadline):
            user = self.get(user_id)
            reshaped = False
            if full_name is not None:
                user.full_name = full_name.strip()
            if email is not None and email != user.email:
                if not EMAIL_PATTERN.match(email):
                    raise ValidationError("Invalid user", {"email": "must be a valid email address"})
                self._ensure_unique(None, email)
                user.email = email
            if hierarchy_level_id is not None and hierarchy_level_id != user.hierarchy_level_id:
                if self.db.get(HierarchyLevel, hierarchy_level_id) is None:
                    raise ValidationError(
                        "Invalid user",
                        {"hierarchy_level_id": f"unknown hierarchy level {hierarchy_level_id}"},
                    )
                user.hierarchy_level_id = hierarchy_level_id
                reshaped = True
            if reports_to is not UNCHANGED and reports_to != user.reports_to:
                self.org_tree.assign_manager(user_id, reports_to)
                reshaped = True
            self.db.flush()
            if reshaped:
                affected = self.scope.teams_affected_by(user_id)
                self.scope.refresh_chains(affected, deadline)
                logger.info("Rebuilt supervisor chains of %d teams after editing user %s", len(affected), user_id)
        return user

    def _ensure_unique(self, username: str | None, email: str | None) -> None:
        if username is not None and self.db.scalar(select(User.id).where(User.username == username)):
            raise ConflictError(f"Username already taken: {username}")
        if email is not None and self.db.scalar(select(User.id).where(User.email == email)):
            raise ConflictError(f"Email already registered: {email}")
