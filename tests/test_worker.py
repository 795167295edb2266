"""
Tests for interests/worker.py: message dispatch and the asyncio serve loop.
"""

import asyncio
import logging

import pytest

from interests.config import WorkerConfig
from interests.worker import InterestsWorker, WorkerClient


RULES = {"example.com": {"golf": ["sports", ["golf", 0.9]]}}

MODEL = {
    "classes": ["golf", "cooking"],
    "likelihoods": {"golf": [-1.0, -6.0], "recipe": [-6.0, -1.0]},
}

PAYLOAD = {
    "host": "www.example.com",
    "baseDomain": "example.com",
    "path": "/golf",
    "title": "Golf lessons",
    "url": "https://www.example.com/golf",
}


class FixedLwca:
    def classify(self, url, title):
        return "Sports", "golf/lessons"


def _bootstrapped(**overrides) -> InterestsWorker:
    config = WorkerConfig(namespace="test", interests_data=RULES)
    for key, value in overrides.items():
        setattr(config, key, value)
    worker = InterestsWorker(lwca_factory=lambda data: FixedLwca())
    ack = worker.handle({"command": "bootstrap", "payload": config.to_bootstrap_message()})
    assert ack == {"message": "bootstrapComplete"}
    return worker


def _views(response: dict) -> dict:
    return {r["type"]: r for r in response["results"]}


def test_get_interests_for_document_response_shape():
    worker = _bootstrapped()
    response = worker.handle({"command": "getInterestsForDocument", "payload": dict(PAYLOAD)})

    assert response["message"] == "InterestsForDocument"
    assert response["namespace"] == "test"
    assert response["url"] == PAYLOAD["url"]
    assert [r["type"] for r in response["results"]] == ["rules", "keywords", "combined"]
    views = _views(response)
    assert set(views["rules"]["interests"]) == {"sports", "golf"}
    assert views["keywords"]["interests"] == []


def test_payload_is_not_mutated():
    worker = _bootstrapped()
    payload = dict(PAYLOAD)
    worker.handle({"command": "getInterestsForDocument", "payload": payload})
    assert "results" not in payload


def test_non_dfr_rules_are_ignored():
    worker = _bootstrapped(interests_data_type="plain")
    response = worker.handle({"command": "getInterestsForDocument", "payload": dict(PAYLOAD)})
    assert _views(response)["rules"]["interests"] == []


def test_keywords_need_stopwords_and_model():
    worker = _bootstrapped(classifier_model=MODEL)
    response = worker.handle({"command": "getInterestsForDocument", "payload": dict(PAYLOAD)})
    assert _views(response)["keywords"]["interests"] == []

    worker = _bootstrapped(classifier_model=MODEL, url_stopwords=["www", "com", "https"])
    response = worker.handle({"command": "getInterestsForDocument", "payload": dict(PAYLOAD)})
    views = _views(response)
    assert views["keywords"]["interests"] == ["golf"]
    assert set(views["combined"]["interests"]) == {"sports", "golf"}


def test_lwca_namespace_adds_lwca_view():
    worker = _bootstrapped(namespace="58-cat")
    response = worker.handle({"command": "getInterestsForDocument", "payload": dict(PAYLOAD)})
    assert response["results"][0] == {"type": "lwca", "interests": ["Sports"], "subcat": "golf"}


def test_swap_rules():
    worker = _bootstrapped()
    worker.handle({"command": "swapRules", "payload": {
        "interestsData": {"example.com": {"lessons": ["education"]}},
        "interestsDataType": "dfr",
    }})
    response = worker.handle({"command": "getInterestsForDocument", "payload": dict(PAYLOAD)})
    assert _views(response)["rules"]["interests"] == ["education"]


def test_unknown_command_is_ignored(caplog):
    worker = _bootstrapped()
    with caplog.at_level(logging.WARNING, logger="interests.worker"):
        assert worker.handle({"command": "explode", "payload": {}}) is None
    assert "Unknown worker command" in caplog.text


def test_total_failure_yields_no_response(caplog, monkeypatch):
    worker = _bootstrapped()

    def _boom(doc):
        raise RuntimeError("boom")

    monkeypatch.setattr(worker.combiner, "classify", _boom)
    with caplog.at_level(logging.ERROR, logger="interests.worker"):
        assert worker.handle({"command": "getInterestsForDocument", "payload": dict(PAYLOAD)}) is None
    assert "getInterestsForDocument failed" in caplog.text


def test_malformed_rules_fail_bootstrap():
    worker = InterestsWorker()
    config = WorkerConfig(interests_data={"example.com": ["not", "a", "mapping"]})
    assert worker.handle({"command": "bootstrap", "payload": config.to_bootstrap_message()}) is None


# ---------------------------------------------------------------------------
# Async serve loop
# ---------------------------------------------------------------------------

def test_client_round_trip():
    worker = InterestsWorker()

    async def _run():
        async with WorkerClient(worker, timeout=1.0) as client:
            ack = await client.request("bootstrap", WorkerConfig(interests_data=RULES).to_bootstrap_message())
            response = await client.request("getInterestsForDocument", dict(PAYLOAD))
        return ack, response

    ack, response = asyncio.run(_run())
    assert ack["message"] == "bootstrapComplete"
    assert set(_views(response)["rules"]["interests"]) == {"sports", "golf"}


def test_client_times_out_on_dropped_request():
    worker = InterestsWorker()

    async def _run():
        async with WorkerClient(worker, timeout=0.05) as client:
            await client.request("explode", {})

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(_run())


def test_bootstrap_message_keys():
    message = WorkerConfig(namespace="ns", region_code="US").to_bootstrap_message()
    assert set(message) == {
        "workerNamespace",
        "workerRegionCode",
        "interestsData",
        "interestsDataType",
        "interestsClassifierModel",
        "interestsUrlStopwords",
    }
    assert message["interestsDataType"] == "dfr"
