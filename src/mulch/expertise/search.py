"""BM25 relevance ranking over in-memory expertise records.

Every call tokenizes the records it is given; there is no persistent index.
"""
from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field

from mulch.config.constants import DEFAULT_BM25_B, DEFAULT_BM25_K1, DEFAULT_CONFIRMATION_BOOST
from mulch.expertise.filters import (
    filter_by_classification,
    filter_by_file,
    filter_by_outcome_status,
    filter_by_tag,
    filter_by_type,
)
from mulch.expertise.models import (
    Classification,
    Convention,
    Decision,
    ExpertiseRecord,
    Failure,
    Guide,
    OutcomeStatus,
    Pattern,
    Reference,
    RecordType,
)
from mulch.expertise.scoring import apply_confirmation_boost, compute_confirmation_score
from mulch.expertise.store import ExpertiseStore


@dataclass
class Bm25Params:
    """BM25 tuning parameters."""

    k1: float = DEFAULT_BM25_K1  # term frequency saturation
    b: float = DEFAULT_BM25_B  # document length normalization (0 = none, 1 = full)


@dataclass
class Bm25Result:
    record: ExpertiseRecord
    score: float
    matched_fields: list[str] = field(default_factory=list)


def tokenize(text: str) -> list[str]:
    """Lowercase, turn every char that is not alphanumeric, ``-``, ``_`` or whitespace into a space, split."""
    chars = [
        c if c.isalnum() or c in "-_" or c.isspace() else " "
        for c in text.lower()
    ]
    return "".join(chars).split()


def extract_record_fields(record: ExpertiseRecord) -> dict[str, str]:
    """Searchable text per field name, in document order; blank fields are left out."""
    fields: dict[str, str] = {}

    def add(name: str, value: str | None) -> None:
        if value and value.strip():
            fields[name] = value

    def add_list(name: str, values: list[str] | None) -> None:
        if values:
            add(name, " ".join(values))

    if isinstance(record, Convention):
        add("content", record.content)
    elif isinstance(record, (Pattern, Reference)):
        add("name", record.name)
        add("description", record.description)
        add_list("files", record.files)
    elif isinstance(record, Failure):
        add("description", record.description)
        add("resolution", record.resolution)
    elif isinstance(record, Decision):
        add("title", record.title)
        add("rationale", record.rationale)
    elif isinstance(record, Guide):
        add("name", record.name)
        add("description", record.description)

    add_list("tags", record.tags)
    return fields


def _inverse_document_frequency(corpus: list[list[str]]) -> dict[str, float]:
    doc_count = len(corpus)
    doc_freq: Counter[str] = Counter()
    for tokens in corpus:
        doc_freq.update(set(tokens))
    return {
        term: math.log((doc_count - df + 0.5) / (df + 0.5) + 1)
        for term, df in doc_freq.items()
    }


def _bm25_score(
    query_tokens: list[str],
    doc_tokens: list[str],
    avg_doc_length: float,
    idf: dict[str, float],
    params: Bm25Params,
) -> float:
    tf = Counter(doc_tokens)
    doc_length = len(doc_tokens)
    score = 0.0
    for term in query_tokens:
        term_freq = tf.get(term, 0)
        if term_freq == 0:
            continue
        numerator = term_freq * (params.k1 + 1)
        denominator = term_freq + params.k1 * (1 - params.b + params.b * doc_length / avg_doc_length)
        score += idf.get(term, 0.0) * numerator / denominator
    return score


def search_bm25(
    records: list[ExpertiseRecord],
    query: str,
    params: Bm25Params | None = None,
) -> list[Bm25Result]:
    """Rank ``records`` against ``query``.

    Only records scoring above zero are returned, highest first; equal scores
    keep their incoming order. An empty query or corpus yields no results.
    """
    params = params or Bm25Params()
    if not records or not query.strip():
        return []
    query_tokens = tokenize(query)
    if not query_tokens:
        return []

    field_texts = [extract_record_fields(r) for r in records]
    corpus = [tokenize(" ".join(fields.values())) for fields in field_texts]

    total_length = sum(len(tokens) for tokens in corpus)
    avg_doc_length = total_length / len(corpus)
    if avg_doc_length == 0:
        return []
    idf = _inverse_document_frequency(corpus)
    query_terms = set(query_tokens)

    results: list[Bm25Result] = []
    for record, fields, tokens in zip(records, field_texts, corpus):
        score = _bm25_score(query_tokens, tokens, avg_doc_length, idf, params)
        if score <= 0:
            continue
        matched = [
            name for name, text in fields.items()
            if query_terms.intersection(tokenize(text))
        ]
        results.append(Bm25Result(record=record, score=score, matched_fields=matched))

    results.sort(key=lambda r: r.score, reverse=True)
    return results


def search_records(
    records: list[ExpertiseRecord],
    query: str,
    params: Bm25Params | None = None,
) -> list[ExpertiseRecord]:
    """Records matching ``query``, most relevant first."""
    return [r.record for r in search_bm25(records, query, params)]


@dataclass
class DomainMatches:
    domain: str
    results: list[Bm25Result] = field(default_factory=list)


@dataclass
class SearchFilters:
    """Pre-search narrowing; ``None`` disables a filter."""

    rtype: RecordType | None = None
    classification: Classification | None = None
    tag: str | None = None
    file: str | None = None
    outcome_status: OutcomeStatus | None = None

    def apply(self, records: list[ExpertiseRecord]) -> list[ExpertiseRecord]:
        if self.rtype is not None:
            records = filter_by_type(records, self.rtype)
        if self.classification is not None:
            records = filter_by_classification(records, self.classification)
        if self.tag is not None:
            records = filter_by_tag(records, self.tag)
        if self.file is not None:
            records = filter_by_file(records, self.file)
        if self.outcome_status is not None:
            records = filter_by_outcome_status(records, self.outcome_status)
        return records


def search_domains(
    store: ExpertiseStore,
    domains: list[str],
    query: str,
    filters: SearchFilters | None = None,
    params: Bm25Params | None = None,
    confirmation_boost: float = DEFAULT_CONFIRMATION_BOOST,
    sort_by_score: bool = False,
) -> list[DomainMatches]:
    """Search each domain in turn; domains without hits are left out.

    BM25 scores are scaled by each record's confirmation boost and re-ranked.
    With ``sort_by_score`` the hits are then stably ordered by confirmation
    score alone, so relevance only breaks ties.
    """
    filters = filters or SearchFilters()
    matches: list[DomainMatches] = []
    for domain in domains:
        candidates = filters.apply(store.read_domain(domain))
        results = search_bm25(candidates, query, params)
        for result in results:
            result.score = apply_confirmation_boost(result.score, result.record, confirmation_boost)
        results.sort(key=lambda r: r.score, reverse=True)
        if sort_by_score:
            results.sort(key=lambda r: compute_confirmation_score(r.record), reverse=True)
        if results:
            matches.append(DomainMatches(domain=domain, results=results))
    return matches
