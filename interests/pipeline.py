"""
Glue between the classification worker and the daily interests buffer.

A visit record looks like:

    {
        "host": "www.example.com", "baseDomain": "example.com", "path": "/golf",
        "title": "Golf", "url": "https://www.example.com/golf",
        "visits": [[101, 19650], [102, 19650], [140, 19651]],   # (visitID, day)
    }
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from .buffer import DailyInterestsBuffer
from .config import UNCATEGORIZED
from .worker import WorkerClient


logger = logging.getLogger(__name__)

PAYLOAD_FIELDS = ("host", "baseDomain", "path", "title", "url")


def results_for_buffer(response: dict) -> list[dict]:
    """One {type, interests: [{category, subcat}]} record per result view."""
    records = []
    for result in response.get("results") or []:
        subcat = result.get("subcat")
        interests = [{"category": tag, "subcat": subcat} for tag in result.get("interests") or []]
        if not interests:
            interests = [{"category": UNCATEGORIZED, "subcat": UNCATEGORIZED}]
        records.append({"type": result["type"], "interests": interests})
    return records


def group_visits(visits: Iterable) -> dict[str, list]:
    """(visitID, day) pairs -> {day key: [visitIDs]} in visit order."""
    visit_ids: dict[str, list] = {}
    for visit_id, day in visits:
        visit_ids.setdefault(str(day), []).append(visit_id)
    return visit_ids


def build_batch_entry(visit: dict, response: dict) -> dict:
    visit_ids = group_visits(visit.get("visits") or [])
    date_visits = {day: len(ids) for day, ids in visit_ids.items()}
    return {
        "details": {
            "host": visit.get("host"),
            "baseDomain": visit.get("baseDomain"),
            "path": visit.get("path"),
            "visitIDs": visit_ids,
            "visitCount": dict(date_visits),
            "namespace": response.get("namespace"),
        },
        "dateVisits": date_visits,
        "results": results_for_buffer(response),
    }


async def classify_visits(client: WorkerClient, visits: Iterable[dict]) -> list[dict]:
    """Classify each visit through the worker; unanswered requests are skipped."""
    entries = []
    for visit in visits:
        payload = {key: visit.get(key) for key in PAYLOAD_FIELDS}
        try:
            response = await client.request("getInterestsForDocument", payload)
        except asyncio.TimeoutError:
            logger.warning("No classification response for %s; skipped", visit.get("url") or visit.get("host"))
            continue
        entries.append(build_batch_entry(visit, response))
    return entries


async def process_visits(client: WorkerClient, buffer: DailyInterestsBuffer, visits: Iterable[dict]) -> int:
    """Classify visits and ingest them as one batch. Returns committed entries."""
    entries = await classify_visits(client, visits)
    if not entries:
        return 0
    return buffer.ingest(entries)
