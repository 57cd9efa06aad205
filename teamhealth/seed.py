from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from teamhealth.db import atomic
from teamhealth.models import HealthDimension, HierarchyLevel

logger = logging.getLogger(__name__)

DEFAULT_LEVELS = [
    {
        "id": "level-1", "name": "Vice President", "position": 1, "color": "#7C3AED",
        "can_view_all_teams": True, "can_edit_teams": True, "can_manage_users": True,
        "can_take_survey": False, "can_view_analytics": True, "can_configure_system": True,
        "can_view_reports": True, "can_export_data": True,
    },
    {
        "id": "level-2", "name": "Director", "position": 2, "color": "#2563EB",
        "can_view_all_teams": True, "can_edit_teams": True, "can_manage_users": True,
        "can_take_survey": False, "can_view_analytics": True, "can_configure_system": False,
        "can_view_reports": True, "can_export_data": True,
    },
    {
        "id": "level-3", "name": "Manager", "position": 3, "color": "#059669",
        "can_view_all_teams": False, "can_edit_teams": True, "can_manage_users": False,
        "can_take_survey": False, "can_view_analytics": True, "can_configure_system": False,
        "can_view_reports": True, "can_export_data": True,
    },
    {
        "id": "level-4", "name": "Team Lead", "position": 4, "color": "#EA580C",
        "can_view_all_teams": False, "can_edit_teams": False, "can_manage_users": False,
        "can_take_survey": True, "can_view_analytics": True, "can_configure_system": False,
        "can_view_reports": True, "can_export_data": False,
    },
    {
        "id": "level-5", "name": "Team Member", "position": 5, "color": "#6B7280",
        "can_view_all_teams": False, "can_edit_teams": False, "can_manage_users": False,
        "can_take_survey": True, "can_view_analytics": False, "can_configure_system": False,
        "can_view_reports": False, "can_export_data": False,
    },
]

DEFAULT_DIMENSIONS = [
    ("mission", "Mission",
     "We know exactly why we are here, and we are really excited about it",
     "We have no idea why we are here. There is no high level picture or focus."),
    ("value", "Delivering Value",
     "We deliver great stuff! We are proud of it and our stakeholders are really happy",
     "We deliver crap. We are ashamed to deliver it. Our stakeholders hate us."),
    ("speed", "Speed",
     "We get stuff done really quickly. No waiting, no delays",
     "We never seem to get anything done. We keep getting stuck or interrupted."),
    ("fun", "Fun",
     "We love going to work, and have great fun working together",
     "Boooooooring"),
    ("health", "Health of Codebase",
     "Our code is clean, easy to read, and has great test coverage",
     "Our code is a pile of dung, and technical debt is raging out of control"),
    ("learning", "Learning",
     "We are learning lots of interesting stuff all the time",
     "We never have time to learn anything"),
    ("support", "Support",
     "We always get great support & help when we ask for it",
     "We keep getting stuck because we cannot get the support & help that we ask for"),
    ("pawns", "Pawns or Players",
     "We are in control of our destiny! We decide what to build and how to build it",
     "We are just pawns in a game of chess, with no influence over what we build or how we build it"),
    ("release", "Easy to Release",
     "Releasing is simple, safe, painless and mostly automated",
     "Releasing is risky, painful, lots of manual work, and takes forever"),
    ("process", "Suitable Process",
     "Our way of working fits us perfectly",
     "Our way of working sucks"),
    ("teamwork", "Teamwork",
     "We are a tight-knit team that works together really well",
     "We are a bunch of individuals that neither know nor care about what the others are doing"),
]


def default_dimension_rows() -> list[dict]:
    return [
        {
            "id": dimension_id,
            "name": name,
            "description": good,
            "good_description": good,
            "bad_description": bad,
            "is_active": True,
            "weight": 1.0,
        }
        for dimension_id, name, good, bad in DEFAULT_DIMENSIONS
    ]


def seed_defaults(db: Session) -> None:
    """Insert the default hierarchy and dimension catalog into an empty database."""
    with atomic(db):
        if not db.scalar(select(func.count(HierarchyLevel.id))):
            db.add_all(HierarchyLevel(**row) for row in DEFAULT_LEVELS)
            logger.info("Seeded %d default hierarchy levels", len(DEFAULT_LEVELS))
        if not db.scalar(select(func.count(HealthDimension.id))):
            db.add_all(HealthDimension(**row) for row in default_dimension_rows())
            logger.info("Seeded %d default health dimensions", len(DEFAULT_DIMENSIONS))
