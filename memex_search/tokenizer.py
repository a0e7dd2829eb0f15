"""Query tokenization into discrete terms and quoted phrases."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class QueryTerms:
    """Terms and phrases extracted from a raw query. Both are deduplicated."""

    terms: list[str] = field(default_factory=list)
    phrases: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.terms and not self.phrases


def split_query(query: str) -> QueryTerms:
    """Split a raw query into terms and phrases.

    Supports:
    - Simple terms: 'auth bug' -> terms=['auth', 'bug']
    - Quoted phrases: '"auth bug"' -> phrases=['auth bug']
    - Mixed: 'foo "bar baz" qux' -> terms=['foo', 'qux'], phrases=['bar baz']

    Everything is lower-cased. A quote without a closing partner does not
    start a phrase; the text after it is split into terms.

    Args:
        query: The raw query string.

    Returns:
        QueryTerms with terms and phrases.
    """
    discrete_terms: dict[str, None] = {}
    phrases: dict[str, None] = {}

    fragments = query.lower().split('"')
    # With an odd number of quotes the last fragment was never closed
    closed_count = len(fragments) if len(fragments) % 2 == 1 else len(fragments) - 1

    for i, fragment in enumerate(fragments):
        was_quoted = i % 2 == 1 and i < closed_count
        if was_quoted:
            phrase = fragment.strip()
            if phrase:
                phrases[phrase] = None
        else:
            for term in fragment.split():
                discrete_terms[term] = None

    return QueryTerms(terms=list(discrete_terms), phrases=list(phrases))
