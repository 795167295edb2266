"""
Per-document interest classification.

Combines three signals into one ClassificationResult:
- rules: DFR rule table matches (always deduplicated)
- keywords: statistical text classifier (needs a tokenizer and a model)
- lwca: hierarchical classifier, only for the LWCA namespace

plus "combined", the deduplicated union of rules and keywords.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from .classifiers import HierarchicalClassifier, TextClassifier
from .config import LWCA_NAMESPACE
from .rules import RuleMatcher, RuleTable
from .tokenizer import Tokenizer


logger = logging.getLogger(__name__)

# Public suffixes under which the registrable domain has three labels
TWO_LEVEL_SUFFIXES = frozenset({
    "co.uk", "org.uk", "ac.uk", "gov.uk", "com.au", "net.au", "org.au",
    "co.jp", "ne.jp", "co.nz", "co.in", "com.br", "com.cn", "com.mx",
    "co.za", "com.tr", "co.kr",
})


def base_domain_for(host: str) -> str:
    """Registrable domain for a host, e.g. news.bbc.co.uk -> bbc.co.uk."""
    labels = [label for label in (host or "").lower().strip(".").split(".") if label]
    if len(labels) <= 2:
        return ".".join(labels)
    if ".".join(labels[-2:]) in TWO_LEVEL_SUFFIXES:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


def dedupe_interests(interests: Iterable[str]) -> list[str]:
    """Drop repeated tags, keeping first-seen order."""
    return list(dict.fromkeys(interests))


@dataclass
class Document:
    """A visited page as seen by the classifiers."""
    host: str
    base_domain: str
    path: str = ""
    title: str = ""
    url: str = ""

    @classmethod
    def from_url(cls, url: str, title: str = "") -> "Document":
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        path = parsed.path or ""
        if parsed.query:
            path = f"{path or '/'}?{parsed.query}"
        return cls(host=host, base_domain=base_domain_for(host), path=path, title=title or "", url=url)

    @classmethod
    def from_html(cls, url: str, html: str) -> "Document":
        soup = BeautifulSoup(html or "", "html.parser")
        title = ""
        if soup.title and soup.title.string:
            title = soup.title.string.strip()
        return cls.from_url(url, title)

    @classmethod
    def from_payload(cls, payload: dict) -> "Document":
        """Build from a worker payload (camelCase baseDomain)."""
        return cls(
            host=payload.get("host") or "",
            base_domain=payload.get("baseDomain") or payload.get("base_domain") or "",
            path=payload.get("path") or "",
            title=payload.get("title") or "",
            url=payload.get("url") or "",
        )


@dataclass
class ClassificationResult:
    rules: list[str]
    keywords: list[str]
    combined: list[str]
    lwca: list[str] | None = None
    subcat: str | None = None

    def as_messages(self) -> list[dict]:
        """Result views in worker response order; lwca only when present."""
        results = []
        if self.lwca is not None:
            results.append({"type": "lwca", "interests": list(self.lwca), "subcat": self.subcat})
        results.append({"type": "rules", "interests": list(self.rules)})
        results.append({"type": "keywords", "interests": list(self.keywords)})
        results.append({"type": "combined", "interests": list(self.combined)})
        return results


class ClassificationCombiner:
    """Runs the configured classifiers for one namespace."""

    def __init__(
        self,
        rules: RuleTable | None = None,
        tokenizer: Tokenizer | None = None,
        text_classifier: TextClassifier | None = None,
        lwca_classifier: HierarchicalClassifier | None = None,
        namespace: str | None = None,
        lwca_namespace: str = LWCA_NAMESPACE,
    ):
        self.namespace = namespace
        self.rule_matcher = RuleMatcher(rules, tokenizer)
        self.tokenizer = tokenizer
        self.text_classifier = text_classifier if tokenizer is not None else None
        self.lwca_classifier = lwca_classifier if namespace == lwca_namespace else None

    def swap_rules(self, table: RuleTable | None) -> None:
        self.rule_matcher.table = table

    def classify_lwca(self, doc: Document) -> tuple[list[str], str] | None:
        if self.lwca_classifier is None or not (doc.url and doc.title):
            return None
        try:
            category, subcat_path = self.lwca_classifier.classify(doc.url, doc.title)
            subcat = str(subcat_path).split("/")[0]
        except Exception:
            logger.exception("Hierarchical classifier failed for %s", doc.url)
            return None
        return [category], subcat

    def classify_rules(self, doc: Document) -> list[str]:
        try:
            interests = self.rule_matcher.classify(doc.host, doc.base_domain, doc.path, doc.title, doc.url)
        except Exception:
            logger.exception("Rule matching failed for %s", doc.url or doc.host)
            return []
        return dedupe_interests(interests)

    def classify_keywords(self, doc: Document) -> list[str]:
        if self.text_classifier is None:
            return []
        try:
            tokens = list(self.tokenizer.tokenize(doc.url, doc.title))
            interests = self.text_classifier.classify(tokens)
        except Exception:
            logger.exception("Text classifier failed for %s", doc.url)
            return []
        return dedupe_interests(interests or [])

    def classify(self, doc: Document) -> ClassificationResult:
        lwca = self.classify_lwca(doc)
        rules = self.classify_rules(doc)
        keywords = self.classify_keywords(doc)
        result = ClassificationResult(
            rules=rules,
            keywords=keywords,
            combined=dedupe_interests(rules + keywords),
        )
        if lwca is not None:
            result.lwca, result.subcat = lwca
        return result
