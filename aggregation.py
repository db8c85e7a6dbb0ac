"""
Read-side queries behind the dashboard and the list views.

All queries go through an OwnerScope. Related records are resolved with
explicit batched lookups (`fetch_names`) instead of store-side joins.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from starlette.concurrency import run_in_threadpool

from access import OwnerScope
from logger import get_logger
from schemas import JobStatus, utcnow

logger = get_logger(__name__)

DUE_SOON_WINDOW = timedelta(days=7)
NEWEST_FIRST = [("created_at", -1), ("_id", -1)]
OLDEST_FIRST = [("created_at", 1), ("_id", 1)]


def format_date(value: Optional[datetime]) -> Optional[str]:
    """Render a stored timestamp as YYYY-MM-DD, or None when unset."""
    if value is None:
        return None
    return value.date().isoformat()


async def dashboard_stats(scope: OwnerScope, now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or utcnow()
    active = JobStatus.active.value
    queries = [
        ("jobs", {"status": active}),
        ("customers", None),
        ("pipelines", None),
        ("jobs", {"status": active, "due_date": {"$gte": now, "$lte": now + DUE_SOON_WINDOW}}),
    ]
    active_jobs, total_customers, total_pipelines, due_this_week = await asyncio.gather(
        *(run_in_threadpool(scope.count, name, filter_dict) for name, filter_dict in queries)
    )
    return {
        "activeJobs": active_jobs,
        "totalCustomers": total_customers,
        "totalPipelines": total_pipelines,
        "jobsDueThisWeek": due_this_week,
    }


def fetch_names(scope: OwnerScope, collection_name: str, ids: Iterable[ObjectId]) -> Dict[ObjectId, str]:
    """Map each referenced id to the `name` of the owned record it points at."""
    unique_ids = list(dict.fromkeys(ids))
    if not unique_ids:
        return {}
    docs = scope.find(collection_name, {"_id": {"$in": unique_ids}}, projection={"name": 1})
    return {doc["_id"]: doc.get("name") for doc in docs}


def list_jobs(scope: OwnerScope) -> List[dict]:
    jobs = scope.find("jobs", sort=NEWEST_FIRST)
    customers = fetch_names(scope, "customers", (job["customer_id"] for job in jobs))
    pipelines = fetch_names(scope, "pipelines", (job["pipeline_id"] for job in jobs))

    result = []
    for job in jobs:
        customer = customers.get(job["customer_id"])
        pipeline = pipelines.get(job["pipeline_id"])
        if customer is None or pipeline is None:
            logger.warning("Job %s references a missing customer or pipeline", job["_id"])
        result.append({
            "id": str(job["_id"]),
            "title": job["title"],
            "customer": customer,
            "pipeline": pipeline,
            "currentStep": job["current_step"],
            "status": job["status"],
            "dueDate": format_date(job.get("due_date")),
            "progress": max(0, min(100, job.get("progress", 0))),
        })
    return result


def list_customers(scope: OwnerScope) -> List[dict]:
    result = []
    for customer in scope.find("customers", sort=OLDEST_FIRST):
        active_jobs = scope.count("jobs", {"customer_id": customer["_id"], "status": JobStatus.active.value})
        total_jobs = scope.count("jobs", {"customer_id": customer["_id"]})
        result.append({
            "id": str(customer["_id"]),
            "name": customer["name"],
            "email": customer["email"],
            "phone": customer.get("phone"),
            "activeJobs": active_jobs,
            "totalJobs": total_jobs,
        })
    return result


def list_pipelines(scope: OwnerScope) -> List[dict]:
    result = []
    for pipeline in scope.find("pipelines", sort=OLDEST_FIRST):
        job_count = scope.count("jobs", {"pipeline_id": pipeline["_id"], "status": JobStatus.active.value})
        result.append({
            "id": str(pipeline["_id"]),
            "name": pipeline["name"],
            "description": pipeline.get("description"),
            "steps": list(pipeline.get("steps", [])),
            "jobCount": job_count,
            "createdAt": format_date(pipeline["created_at"]),
        })
    return result
