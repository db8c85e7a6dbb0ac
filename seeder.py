"""Sample pipelines, customers and jobs for a newly created user."""
from __future__ import annotations

from datetime import datetime, timezone

from access import OwnerScope
from logger import get_logger
from schemas import Customer, Job, JobStatus, Pipeline

logger = get_logger(__name__)

SAMPLE_PIPELINES = [
    {
        "name": "Web Development",
        "description": "Standard web development workflow",
        "steps": ["Initial Contact", "Requirements", "Design", "Development", "Testing", "Deployment"],
    },
    {
        "name": "Mobile App Development",
        "description": "Mobile application development process",
        "steps": ["Discovery", "Wireframes", "UI/UX", "Development", "Beta Testing", "App Store"],
    },
]

SAMPLE_CUSTOMERS = [
    {"name": "ABC Corp", "email": "contact@abccorp.com", "phone": "+1-555-0123"},
    {"name": "Tasty Bites", "email": "info@tastybites.com", "phone": "+1-555-0456"},
    {"name": "Jane Smith", "email": "jane@example.com", "phone": "+1-555-0789"},
]

# (title, customer, pipeline, current step, due date, progress)
SAMPLE_JOBS = [
    ("E-commerce Website", "ABC Corp", "Web Development", "Development", (2025, 7, 1), 60),
    ("Restaurant App", "Tasty Bites", "Mobile App Development", "UI/UX", (2025, 7, 15), 30),
    ("Portfolio Site", "Jane Smith", "Web Development", "Testing", (2025, 6, 20), 85),
]


def create_sample_data(scope: OwnerScope) -> bool:
    """
    Seed demo records for the scope's user.

    Any failure is logged and reported through the return value; the caller's
    login has already succeeded and must not be undone by a seeding error.
    """
    try:
        pipeline_ids = {
            p["name"]: scope.insert(Pipeline(user_id=scope.user_id, **p)) for p in SAMPLE_PIPELINES
        }
        customer_ids = {
            c["name"]: scope.insert(Customer(user_id=scope.user_id, **c)) for c in SAMPLE_CUSTOMERS
        }
        for title, customer, pipeline, step, due, progress in SAMPLE_JOBS:
            scope.insert(Job(
                title=title,
                customer_id=customer_ids[customer],
                pipeline_id=pipeline_ids[pipeline],
                current_step=step,
                status=JobStatus.active,
                due_date=datetime(*due, tzinfo=timezone.utc),
                progress=progress,
                user_id=scope.user_id,
            ))
    except Exception:
        logger.exception("Error creating sample data for user %s", scope.user_id)
        return False

    logger.info("Sample data created for user: %s", scope.user_id)
    return True
