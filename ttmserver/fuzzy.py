"""
Fuzzy Match Engine
Two-phase approximate matching against a search index.

Phase 1 finds source-language strings similar to the query text.
Phase 2 fetches the translations of those strings into the target language.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .base import sort_suggestions
from .index.protocol import IndexClient
from .models import Suggestion, strip_language

logger = logging.getLogger(__name__)


@dataclass
class CandidateSet:
    """Phase-1 output, keyed by source id (document id without language)."""
    contents: Dict[str, str]
    scores: Dict[str, float]
    target_ids: List[str]

    def __len__(self) -> int:
        return len(self.contents)


class FuzzyMatchEngine:
    """
    Finds translation suggestions for a source text.

    The interface usually displays the three best candidates. These may come
    from more than three source strings when translations coincide, so phase 1
    over-fetches, and keeps fetching while the scores are still too uniform
    to tell where the long tail starts.
    """

    def __init__(
        self,
        client: IndexClient,
        cutoff: float = 0.65,
        first_page_size: int = 100,
        escalation_factor: int = 5,
        distinct_scores: int = 6,
        lookup_size: int = 25,
        timeout: Optional[float] = 10.0,
    ):
        """
        Initialize engine.

        Args:
            client: Index to search
            cutoff: Minimum phase-1 score
            first_page_size: Candidates requested by the first phase-1 page
            escalation_factor: Size multiplier for the second page
            distinct_scores: Distinct scores that end escalation
            lookup_size: Cap on phase-2 results
            timeout: Seconds per index call
        """
        self.client = client
        self.cutoff = cutoff
        self.first_page_size = first_page_size
        self.second_page_size = first_page_size * escalation_factor
        self.distinct_scores = distinct_scores
        self.lookup_size = lookup_size
        self.timeout = timeout

    def find_candidates(self, source_language: str, target_language: str, text: str) -> CandidateSet:
        """Phase 1: source strings close to ``text``, with escalation."""
        contents: Dict[str, str] = {}
        scores: Dict[str, float] = {}
        target_ids: List[str] = []

        offset = 0
        size = self.first_page_size
        min_score = self.cutoff

        while True:
            page = self.client.fuzzy_search(
                text,
                language=source_language,
                min_score=min_score,
                offset=offset,
                size=size,
                timeout=self.timeout,
            )
            if len(page) == 0:
                break

            for hit in page.hits:
                if hit.score < min_score:
                    continue
                source_id = strip_language(hit.id)
                if source_id not in contents:
                    target_ids.append(f"{source_id}/{target_language}")
                contents[source_id] = hit.source.get("content", "")
                scores[source_id] = hit.score

            # Enough variation in scores: we are past the head of the results
            if len(set(scores.values())) >= self.distinct_scores:
                break

            # Already on the larger page; settle for what we have
            if len(page) == self.second_page_size:
                break

            # Reported hits are all collected
            if page.total <= len(contents):
                break

            if scores:
                min_score = min(scores.values())
            offset += size
            size = self.second_page_size

        return CandidateSet(contents=contents, scores=scores, target_ids=target_ids)

    def lookup_translations(self, candidates: CandidateSet, target_language: str) -> List[Suggestion]:
        """Phase 2: fetch translations of the candidate strings."""
        if not candidates.target_ids:
            return []

        hits = self.client.get_by_ids(
            candidates.target_ids,
            size=self.lookup_size,
            fields=["wiki", "uri", "content", "localid"],
            timeout=self.timeout,
        )

        suggestions = []
        for hit in hits:
            source_id = strip_language(hit.id)
            if source_id not in candidates.contents:
                logger.debug("Translation %s has no matching candidate", hit.id)
                continue
            localid = hit.source.get("localid") or ""
            suggestions.append(Suggestion(
                source=candidates.contents[source_id],
                target=hit.source.get("content") or "",
                context=localid,
                quality=candidates.scores[source_id],
                wiki=hit.source.get("wiki") or "",
                location=f"{localid}/{target_language}",
                uri=hit.source.get("uri") or "",
            ))
        return suggestions

    def query(self, source_language: str, target_language: str, text: str) -> List[Suggestion]:
        """
        Ranked suggestions for ``text``.

        Returns:
            Suggestions sorted by descending quality, ties in discovery order
        """
        if not text or not text.strip():
            return []

        candidates = self.find_candidates(source_language, target_language, text)
        logger.debug(
            "Fuzzy phase 1: %d candidates for %s->%s", len(candidates), source_language, target_language
        )
        return sort_suggestions(self.lookup_translations(candidates, target_language))
