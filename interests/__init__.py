"""
Interest classification and daily aggregation.

Primary interface:
    from interests import InterestsWorker, DailyInterestsBuffer, WorkerConfig

    worker = InterestsWorker()
    worker.handle({"command": "bootstrap", "payload": WorkerConfig(
        namespace="58-cat", interests_data=rules).to_bootstrap_message()})

    response = worker.handle({"command": "getInterestsForDocument", "payload": {
        "host": "www.example.com", "baseDomain": "example.com",
        "path": "/golf", "title": "Golf clubs", "url": "https://www.example.com/golf"}})
    # response["results"] -> [{type: rules, ...}, {type: keywords, ...}, {type: combined, ...}]

    buffer = DailyInterestsBuffer(StateStore(JsonFileBackend(path)))
    buffer.ingest(batch)
    if buffer.emit_ready():
        closed_days = buffer.flush()
"""

from .buffer import DailyInterestsBuffer, DomainIndex, InterestAccumulator, MalformedEntryError
from .classifiers import NaiveBayesClassifier
from .combiner import ClassificationCombiner, ClassificationResult, Document
from .config import BufferConfig, WorkerConfig
from .rules import RuleMatcher, RuleTable, RuleTableError, interest_finalizer, load_rule_table
from .store import JsonFileBackend, MemoryBackend, StateStore
from .tokenizer import UrlTitleTokenizer
from .worker import InterestsWorker, WorkerClient


__all__ = [
    'DailyInterestsBuffer',
    'DomainIndex',
    'InterestAccumulator',
    'MalformedEntryError',
    'NaiveBayesClassifier',
    'ClassificationCombiner',
    'ClassificationResult',
    'Document',
    'BufferConfig',
    'WorkerConfig',
    'RuleMatcher',
    'RuleTable',
    'RuleTableError',
    'interest_finalizer',
    'load_rule_table',
    'JsonFileBackend',
    'MemoryBackend',
    'StateStore',
    'UrlTitleTokenizer',
    'InterestsWorker',
    'WorkerClient',
]
