"""
Message-driven classification worker.

The worker owns a ClassificationCombiner and talks to the rest of the
pipeline only through messages of the form {"command": ..., "payload": ...}:

- bootstrap: install namespace, rules, tokenizer and model
- swapRules: replace the rule table
- getInterestsForDocument: classify one document

Usage:
    worker = InterestsWorker()
    worker.handle({"command": "bootstrap", "payload": config.to_bootstrap_message()})
    response = worker.handle({
        "command": "getInterestsForDocument",
        "payload": {"host": "www.example.com", "baseDomain": "example.com",
                    "path": "/", "title": "Example", "url": "https://www.example.com/"},
    })

serve() runs the same dispatch as an asyncio loop over an inbox/outbox queue
pair; WorkerClient is the caller side with a per-request timeout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .classifiers import HierarchicalClassifier, NaiveBayesClassifier
from .combiner import ClassificationCombiner, Document
from .config import DFR_DATA_TYPE, LWCA_NAMESPACE
from .rules import RuleTable
from .tokenizer import UrlTitleTokenizer


logger = logging.getLogger(__name__)

LwcaFactory = Callable[[dict], HierarchicalClassifier]


class InterestsWorker:
    """Single-threaded worker; one message is handled to completion at a time."""

    def __init__(self, lwca_factory: LwcaFactory | None = None, lwca_namespace: str = LWCA_NAMESPACE):
        self.lwca_factory = lwca_factory
        self.lwca_namespace = lwca_namespace
        self.namespace: str | None = None
        self.region_code: str | None = None
        self.combiner = ClassificationCombiner()
        self._handlers = {
            "bootstrap": self.bootstrap,
            "swapRules": self.swap_rules,
            "getInterestsForDocument": self.get_interests_for_document,
        }

    @staticmethod
    def _rules_from(data: dict) -> RuleTable | None:
        if data.get("interestsDataType") != DFR_DATA_TYPE:
            return None
        interests_data = data.get("interestsData")
        if interests_data is None:
            return None
        if isinstance(interests_data, RuleTable):
            return interests_data
        return RuleTable.from_mapping(interests_data)

    def bootstrap(self, data: dict) -> dict:
        self.namespace = data.get("workerNamespace")
        self.region_code = data.get("workerRegionCode")
        rules = self._rules_from(data)

        tokenizer = None
        stopwords = data.get("interestsUrlStopwords")
        if stopwords:
            tokenizer = UrlTitleTokenizer(url_stopwords=stopwords, region_code=self.region_code)

        text_classifier = None
        model = data.get("interestsClassifierModel")
        if model:
            text_classifier = NaiveBayesClassifier(model)

        lwca_classifier = None
        if self.lwca_factory is not None and self.namespace == self.lwca_namespace:
            lwca_classifier = self.lwca_factory(data)

        self.combiner = ClassificationCombiner(
            rules=rules,
            tokenizer=tokenizer,
            text_classifier=text_classifier,
            lwca_classifier=lwca_classifier,
            namespace=self.namespace,
            lwca_namespace=self.lwca_namespace,
        )
        logger.info(
            "Worker bootstrapped: namespace=%s rules=%s keywords=%s lwca=%s",
            self.namespace,
            rules is not None,
            text_classifier is not None,
            lwca_classifier is not None,
        )
        return {"message": "bootstrapComplete"}

    def swap_rules(self, data: dict) -> None:
        rules = self._rules_from(data)
        if rules is not None:
            self.combiner.swap_rules(rules)
        return None

    def get_interests_for_document(self, payload: dict) -> dict:
        response = dict(payload)
        response["message"] = "InterestsForDocument"
        response["namespace"] = self.namespace
        result = self.combiner.classify(Document.from_payload(payload))
        response["results"] = result.as_messages()
        return response

    def handle(self, message: dict) -> dict | None:
        """Dispatch one message. Failures are logged and yield no response."""
        command = message.get("command")
        handler = self._handlers.get(command)
        if handler is None:
            logger.warning("Unknown worker command: %r", command)
            return None
        try:
            return handler(message.get("payload") or {})
        except Exception:
            logger.exception("Worker command %s failed", command)
            return None

    async def serve(self, inbox: asyncio.Queue, outbox: asyncio.Queue) -> None:
        """Handle messages from inbox until a None sentinel arrives."""
        while True:
            message = await inbox.get()
            try:
                if message is None:
                    return
                response = self.handle(message)
                if response is not None:
                    await outbox.put(response)
            finally:
                inbox.task_done()


class WorkerClient:
    """
    Caller side of a served worker.

    Requests are answered in order by a single worker, so one outstanding
    request at a time is assumed. A request the worker drops (failure or
    unknown command) surfaces as asyncio.TimeoutError.
    """

    def __init__(self, worker: InterestsWorker, timeout: float = 10.0):
        self.worker = worker
        self.timeout = timeout
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.outbox: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.worker.serve(self.inbox, self.outbox))

    async def stop(self) -> None:
        if self._task is not None:
            await self.inbox.put(None)
            await self._task
            self._task = None

    async def post(self, command: str, payload: dict) -> None:
        await self.inbox.put({"command": command, "payload": payload})

    async def request(self, command: str, payload: dict, timeout: float | None = None) -> dict:
        await self.post(command, payload)
        return await asyncio.wait_for(self.outbox.get(), timeout=timeout or self.timeout)

    async def __aenter__(self) -> "WorkerClient":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()
