"""
Rule-based interest matching over DFR rule tables.

A DFR table maps a registrable domain (or "__ANY") to a rule set; a rule set
maps rule keys to interest lists:

    {
        "__ANY": {"__HOME": ["news"]},
        "example.com": {
            "__ANY": ["shopping"],
            "golf clubs": ["sports", ["golf", 0.9]],
        },
    }

Rule keys are parsed once, when the table is loaded, into AnyKey, HomeKey or
TokenKey. Matching runs in fixed precedence order:

1. every rule of the global "__ANY" rule set
2. the domain rule set's "__ANY" interests
3. every other domain rule (home page check or all-tokens-present check)

The collected entries are then reduced by interest_finalizer().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Union

from .config import ANY_KEY, HOME_KEY, RESERVED_MARKER, TOKEN_SPLITTER, load_data_file
from .tokenizer import Tokenizer, UrlTitleTokenizer


logger = logging.getLogger(__name__)

# A bare tag, or a (tag, weight) candidate of which only the heaviest survives
InterestEntry = Union[str, tuple[str, float]]


class RuleTableError(ValueError):
    """Raised when a DFR rule table has an unusable shape."""


# ---------------------------------------------------------------------------
# Rule keys
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnyKey:
    """Matches every document."""


@dataclass(frozen=True)
class HomeKey:
    """Matches root, empty and query-only paths."""


@dataclass(frozen=True)
class TokenKey:
    """Matches when every token is present in the word set."""
    tokens: tuple[str, ...]


RuleKey = Union[AnyKey, HomeKey, TokenKey]


def parse_rule_key(raw: str) -> RuleKey | None:
    """Parse a raw rule key. Returns None for keys that can never match."""
    if raw == ANY_KEY:
        return AnyKey()
    if raw == HOME_KEY:
        return HomeKey()
    if RESERVED_MARKER in raw:
        return None
    tokens = tuple(t for t in TOKEN_SPLITTER.split(raw) if t)
    if not tokens:
        return None
    return TokenKey(tokens)


def is_home_path(path: str | None) -> bool:
    return not path or path == "/" or path.startswith("/?")


def key_matches(key: RuleKey, words: set[str], path: str | None) -> bool:
    if isinstance(key, AnyKey):
        return True
    if isinstance(key, HomeKey):
        return is_home_path(path)
    return all(token in words for token in key.tokens)


# ---------------------------------------------------------------------------
# Rule sets and tables
# ---------------------------------------------------------------------------

def _parse_interests(raw_key: str, value) -> list[InterestEntry]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise RuleTableError(f"Rule {raw_key!r}: interests must be a list, got {type(value).__name__}")

    entries: list[InterestEntry] = []
    for item in value:
        if isinstance(item, str):
            entries.append(item)
        elif isinstance(item, (list, tuple)) and len(item) == 2 and isinstance(item[0], str):
            try:
                entries.append((item[0], float(item[1])))
            except (TypeError, ValueError) as exc:
                raise RuleTableError(f"Rule {raw_key!r}: bad weight in {item!r}") from exc
        else:
            raise RuleTableError(f"Rule {raw_key!r}: unsupported interest entry {item!r}")
    return entries


@dataclass
class Rule:
    raw: str
    key: RuleKey
    interests: list[InterestEntry]


@dataclass
class RuleSet:
    """Parsed rules for one domain key, "__ANY" rules kept apart."""
    any_interests: list[InterestEntry] = field(default_factory=list)
    rules: list[Rule] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: dict) -> "RuleSet":
        if not isinstance(data, dict):
            raise RuleTableError(f"Rule set must be a mapping, got {type(data).__name__}")
        rule_set = cls()
        for raw_key, value in data.items():
            interests = _parse_interests(raw_key, value)
            key = parse_rule_key(str(raw_key))
            if key is None:
                logger.debug("Rule key %r never matches; skipped", raw_key)
                continue
            if isinstance(key, AnyKey):
                rule_set.any_interests.extend(interests)
            else:
                rule_set.rules.append(Rule(raw=str(raw_key), key=key, interests=interests))
        return rule_set

    def __len__(self) -> int:
        return len(self.rules) + (1 if self.any_interests else 0)

    def match(self, words: set[str], path: str | None) -> list[InterestEntry]:
        matched: list[InterestEntry] = list(self.any_interests)
        for rule in self.rules:
            if key_matches(rule.key, words, path):
                matched.extend(rule.interests)
        return matched


class RuleTable:
    """A parsed DFR rule table."""

    def __init__(self, rule_sets: dict[str, RuleSet] | None = None):
        self.rule_sets = dict(rule_sets or {})

    @classmethod
    def from_mapping(cls, data: dict) -> "RuleTable":
        if not isinstance(data, dict):
            raise RuleTableError(f"Rule table must be a mapping, got {type(data).__name__}")
        return cls({str(domain): RuleSet.from_mapping(rules) for domain, rules in data.items()})

    @property
    def any_rules(self) -> RuleSet | None:
        return self.rule_sets.get(ANY_KEY)

    def applies_to(self, base_domain: str | None) -> bool:
        """True when the table could produce interests for this domain."""
        return ANY_KEY in self.rule_sets or (base_domain or "") in self.rule_sets

    def match(self, words: set[str], base_domain: str | None, path: str | None) -> list[InterestEntry]:
        """Collect raw interest entries in precedence order (not finalized)."""
        interests: list[InterestEntry] = []

        global_rules = self.any_rules
        if global_rules is not None:
            interests.extend(global_rules.match(words, path))

        domain_rules = self.rule_sets.get(base_domain or "")
        if not domain_rules:
            return interests

        interests.extend(domain_rules.match(words, path))
        return interests


def load_rule_table(path: str | Path) -> RuleTable:
    """Load a DFR rule table from a .json, .yaml or .yml file."""
    data = load_data_file(path)
    if data is None:
        return RuleTable()
    return RuleTable.from_mapping(data)


# ---------------------------------------------------------------------------
# Word sets and finalization
# ---------------------------------------------------------------------------

def _add_chunks(words: set[str], chunks: Iterable[str], prefix: str = "", suffix: str = "") -> None:
    prev = None
    for chunk in chunks:
        if not chunk:
            continue
        words.add(prefix + chunk + suffix)
        if prev:
            words.add(prefix + prev + chunk + suffix)
        prev = chunk


def build_word_set(
    tokenizer: Tokenizer,
    host: str | None,
    base_domain: str | None,
    path: str | None,
    title: str | None,
    url: str | None,
) -> set[str]:
    """Terms and bigrams from url/title, host labels ("x.") and path segments ("/x")."""
    words: set[str] = set()
    _add_chunks(words, tokenizer.tokenize(url or "", title or ""))

    host = host or ""
    if base_domain and host.endswith(base_domain):
        host = host[: len(host) - len(base_domain)]
    _add_chunks(words, host.split("."), suffix=".")

    for segment in (path or "").split("/"):
        _add_chunks(words, tokenizer.tokenize(segment, ""), prefix="/")
    return words


def interest_finalizer(interests: Iterable[InterestEntry]) -> list[str]:
    """
    Reduce matched entries to tags.

    Bare tags are always kept. Of the weighted candidates only the one with the
    strictly greatest positive weight is kept, first seen winning ties:

        interest_finalizer(["xyz", ["golf", 0.7], ["foo", 0.5], "bar"])
        # ['xyz', 'bar', 'golf']
    """
    final: dict[str, bool] = {}
    best_weight = 0.0
    best_interest = None
    for item in interests:
        if isinstance(item, (list, tuple)):
            tag, weight = item[0], item[1]
            if weight > best_weight:
                best_weight = weight
                best_interest = tag
        else:
            final[item] = True
    if best_interest:
        final[best_interest] = True
    return list(final)


class RuleMatcher:
    """Rule classification for documents against an installed table."""

    def __init__(self, table: RuleTable | None = None, tokenizer: Tokenizer | None = None):
        self.table = table
        self.tokenizer = tokenizer or UrlTitleTokenizer()

    def classify(
        self,
        host: str | None,
        base_domain: str | None,
        path: str | None,
        title: str | None = "",
        url: str | None = "",
    ) -> list[str]:
        if self.table is None or not self.table.applies_to(base_domain):
            return []
        words = build_word_set(self.tokenizer, host, base_domain, path, title, url)
        return interest_finalizer(self.table.match(words, base_domain, path))
