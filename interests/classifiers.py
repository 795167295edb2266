"""
Classifier interfaces used by the combiner.

- TextClassifier: token sequence -> interest tags (statistical, keyword view)
- HierarchicalClassifier: (url, title) -> (category, "subcat/path")

NaiveBayesClassifier is the bundled TextClassifier. Its model is a mapping:

    {
        "classes": ["golf", "cooking"],
        "priors": [-0.69, -0.69],              # log priors, optional
        "likelihoods": {"putt": [-1.2, -6.0]}, # log P(token | class)
        "threshold": 0.5,                      # min posterior, optional
        "min_tokens": 1,                       # min known tokens, optional
    }
"""

from __future__ import annotations

import math
from typing import Iterable, Protocol, Sequence


class TextClassifier(Protocol):
    def classify(self, tokens: Sequence[str]) -> list[str] | None:
        ...


class HierarchicalClassifier(Protocol):
    def classify(self, url: str, title: str) -> tuple[str, str]:
        ...


class NaiveBayesClassifier:
    """Multinomial naive Bayes over a precomputed log-likelihood model."""

    def __init__(self, model: dict):
        classes = model.get("classes") or []
        if not classes:
            raise ValueError("classifier model has no classes")
        self.classes = [str(c) for c in classes]

        priors = model.get("priors")
        if priors is None:
            priors = [-math.log(len(self.classes))] * len(self.classes)
        if len(priors) != len(self.classes):
            raise ValueError("classifier model priors do not match classes")
        self.priors = [float(p) for p in priors]

        self.likelihoods: dict[str, list[float]] = {}
        for token, row in (model.get("likelihoods") or {}).items():
            if len(row) != len(self.classes):
                raise ValueError(f"classifier model row for {token!r} does not match classes")
            self.likelihoods[str(token)] = [float(v) for v in row]

        self.threshold = float(model.get("threshold", 0.0))
        self.min_tokens = int(model.get("min_tokens", 1))

    def scores(self, tokens: Iterable[str]) -> tuple[list[float], int]:
        scores = list(self.priors)
        known = 0
        for token in tokens:
            row = self.likelihoods.get(token)
            if row is None:
                continue
            known += 1
            for i, value in enumerate(row):
                scores[i] += value
        return scores, known

    def classify(self, tokens: Sequence[str]) -> list[str] | None:
        scores, known = self.scores(tokens)
        if known < self.min_tokens:
            return None

        best = max(range(len(scores)), key=lambda i: scores[i])
        # posterior of the winner via log-sum-exp
        top = scores[best]
        total = sum(math.exp(s - top) for s in scores)
        posterior = 1.0 / total
        if posterior < self.threshold:
            return None
        return [self.classes[best]]
