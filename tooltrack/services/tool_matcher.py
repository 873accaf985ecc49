"""Free-text tool references resolved against a tenant's catalog.

Matching narrows in three tiers and stops at the first tier with a hit:

1. exact: case-insensitive equality with the name or an alias
2. substring: the label contains the query, or the query contains the label
3. word overlap: entries sharing the most words (length > 2) with the query,
   words counting as shared when one contains the other
"""
import enum
import re
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, List, Sequence, TypeVar

T = TypeVar("T")


class MatchTier(str, enum.Enum):
    EXACT = "exact"
    SUBSTRING = "substring"
    OVERLAP = "overlap"
    NONE = "none"


@dataclass
class MatchResult(Generic[T]):
    tier: MatchTier
    candidates: List[T] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.candidates)

    @property
    def is_unique(self) -> bool:
        return len(self.candidates) == 1

    @property
    def is_exact(self) -> bool:
        return self.tier == MatchTier.EXACT and self.is_unique


def normalize(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "")).strip().lower()


def words(text: str) -> List[str]:
    return [w for w in re.findall(r"[a-z0-9]+", normalize(text)) if len(w) > 2]


def _contains_either(query: str, label: str) -> bool:
    return bool(label) and (query in label or label in query)


def _overlap_score(query_words: Sequence[str], labels: Iterable[str]) -> int:
    entry_words = set()
    for label in labels:
        entry_words.update(words(label))
    return sum(
        1 for ew in entry_words
        if any(qw in ew or ew in qw for qw in query_words)
    )


def match(query: str, items: Sequence[T], labels: Callable[[T], List[str]]) -> MatchResult[T]:
    q = normalize(query)
    if not q or not items:
        return MatchResult(MatchTier.NONE)

    exact = [item for item in items if any(normalize(label) == q for label in labels(item))]
    if exact:
        return MatchResult(MatchTier.EXACT, exact)

    substring = [
        item for item in items
        if any(_contains_either(q, normalize(label)) for label in labels(item))
    ]
    if substring:
        return MatchResult(MatchTier.SUBSTRING, substring)

    query_words = words(q)
    if not query_words:
        return MatchResult(MatchTier.NONE)
    scored = [(item, _overlap_score(query_words, labels(item))) for item in items]
    best = max(score for _, score in scored)
    if best <= 0:
        return MatchResult(MatchTier.NONE)
    return MatchResult(MatchTier.OVERLAP, [item for item, score in scored if score == best])


def match_tools(query: str, catalog):
    """Match against catalog tools (name and aliases)."""
    return match(query, catalog, lambda tool: tool.labels)


def match_held(query: str, checkouts):
    """Match against the requester's own open checkouts only."""
    return match(query, checkouts, lambda checkout: [checkout.tool])
