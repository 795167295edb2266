import asyncio

from interests.buffer import DailyInterestsBuffer
from interests.config import WorkerConfig
from interests.pipeline import build_batch_entry, group_visits, process_visits, results_for_buffer
from interests.store import MemoryBackend, StateStore
from interests.worker import InterestsWorker, WorkerClient


RULES = {"example.com": {"golf": ["sports"]}}

VISIT = {
    "host": "www.example.com",
    "baseDomain": "example.com",
    "path": "/golf",
    "title": "Golf",
    "url": "https://www.example.com/golf",
    "visits": [[11, 99], [12, 100], [13, 100]],
}


def _response(rules=("sports",)):
    return {
        "message": "InterestsForDocument",
        "namespace": "58-cat",
        "results": [
            {"type": "lwca", "interests": ["Sports"], "subcat": "golf"},
            {"type": "rules", "interests": list(rules)},
            {"type": "keywords", "interests": []},
            {"type": "combined", "interests": list(rules)},
        ],
    }


def test_results_for_buffer():
    records = {r["type"]: r["interests"] for r in results_for_buffer(_response())}
    assert records["lwca"] == [{"category": "Sports", "subcat": "golf"}]
    assert records["rules"] == [{"category": "sports", "subcat": None}]
    assert records["keywords"] == [{"category": "uncategorized", "subcat": "uncategorized"}]


def test_group_visits_by_day():
    assert group_visits(VISIT["visits"]) == {"99": [11], "100": [12, 13]}


def test_build_batch_entry():
    entry = build_batch_entry(VISIT, _response())
    assert entry["dateVisits"] == {"99": 1, "100": 2}
    assert entry["details"]["visitIDs"] == {"99": [11], "100": [12, 13]}
    assert entry["details"]["namespace"] == "58-cat"
    assert len(entry["results"]) == 4


def test_built_entry_ingests():
    buffer = DailyInterestsBuffer(StateStore(MemoryBackend()))
    assert buffer.ingest([build_batch_entry(VISIT, _response())]) == 1
    interests = buffer.get_interests()
    assert interests["100"]["rules"]["58-cat"]["sports"]["visitIDs"] == [12, 13]
    assert interests["99"]["lwca"]["58-cat"]["Sports"]["subcats"] == {"11": "golf"}
    assert "keywords" not in interests["100"]


def test_process_visits_end_to_end():
    worker = InterestsWorker()
    worker.handle({"command": "bootstrap", "payload": WorkerConfig(namespace="ns", interests_data=RULES).to_bootstrap_message()})
    buffer = DailyInterestsBuffer(StateStore(MemoryBackend()))

    async def _run():
        async with WorkerClient(worker, timeout=1.0) as client:
            return await process_visits(client, buffer, [VISIT])

    assert asyncio.run(_run()) == 1
    assert buffer.get_interests()["100"]["combined"]["ns"]["sports"]["hosts"] == {"www.example.com": 2}
    domains = buffer.get_domains()
    assert domains["all"]["www.example.com"] == {"count": 3, "visitID": 11}
    # counted once per categorized view (rules and combined)
    assert domains["byInterest"]["sports"]["www.example.com"] == {"count": 6, "visitID": 11}
