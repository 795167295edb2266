"""
URL and title tokenizer.

Produces lowercase word tokens in document order:

    tokenizer = UrlTitleTokenizer()
    tokenizer.tokenize("https://www.example.com/golf-news.html", "Golf News")
    # ['example', 'golf', 'news', 'golf', 'news']

URL tokens are filtered against the stopword set; title tokens are kept as is.
Pure digit tokens are dropped from both.
"""

from __future__ import annotations

import re
from typing import Iterable, Iterator, Protocol


WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)

DEFAULT_URL_STOPWORDS = frozenset({
    "http", "https", "www", "com", "org", "net", "html", "htm", "php", "asp",
    "aspx", "index",
})


class Tokenizer(Protocol):
    def tokenize(self, url: str, title: str) -> Iterable[str]:
        ...


class UrlTitleTokenizer:
    """Regex word tokenizer with a URL stopword set."""

    def __init__(self, url_stopwords: Iterable[str] | None = None, region_code: str | None = None):
        if url_stopwords is None:
            url_stopwords = DEFAULT_URL_STOPWORDS
        self.url_stopwords = frozenset(w.lower() for w in url_stopwords)
        self.region_code = region_code

    def _words(self, text: str | None) -> Iterator[str]:
        if not text:
            return
        for match in WORD_RE.finditer(text.lower()):
            word = match.group()
            if word.isdigit():
                continue
            yield word

    def tokenize(self, url: str, title: str = "") -> list[str]:
        tokens = [w for w in self._words(url) if w not in self.url_stopwords]
        tokens.extend(self._words(title))
        return tokens
