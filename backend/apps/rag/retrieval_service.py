"""
RetrievalService: find prior incidents and runbook fragments similar to a
candidate record, for grounding the diagnosis step.

Flow per call:
1. Build query text from the candidate (incident or runbook fragment)
2. Embed it (one model call)
3. Query the incident store and the runbook store with the call site's
   (min_score, limit)
4. Optionally rescale scores by provenance (RAG_SOURCE_TYPE_BOOSTS)
5. Return a RetrievalContext with bounded snippets

Stateless: nothing is kept between calls.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.conf import settings

from . import vector_codec
from .embedding_model import EmbeddingModel, get_embedding_model
from .embedding_service import is_blank
from .embedding_store import EmbeddingStore, ScoredRecord, get_incident_store, get_runbook_store
from .exceptions import SearchFailed
from .results import RetrievalContext, RetrievalErrorKind, RetrievalMatch, RetrievalResult

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCORE = 0.7
DEFAULT_INCIDENT_LIMIT = 5
DEFAULT_RUNBOOK_LIMIT = 3
DEFAULT_SNIPPET_LENGTH = 200


@dataclass(frozen=True)
class SearchParams:
    min_score: float
    limit: int


@dataclass(frozen=True)
class CallSiteConfig:
    incidents: SearchParams
    runbooks: SearchParams


@dataclass(frozen=True)
class RetrievalConfig:
    """Thresholds per call site, snippet bound and provenance boosts."""
    for_incident: CallSiteConfig
    for_fragment: CallSiteConfig
    snippet_length: int = DEFAULT_SNIPPET_LENGTH
    source_type_boosts: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_settings(cls) -> 'RetrievalConfig':
        retrieval = getattr(settings, 'RAG_RETRIEVAL', {})
        return cls(
            for_incident=_call_site(retrieval.get('incident', {})),
            for_fragment=_call_site(retrieval.get('runbook', {})),
            snippet_length=getattr(settings, 'RAG_SNIPPET_LENGTH', DEFAULT_SNIPPET_LENGTH),
            source_type_boosts=dict(getattr(settings, 'RAG_SOURCE_TYPE_BOOSTS', {}) or {}),
        )


def _call_site(raw: dict) -> CallSiteConfig:
    incidents = raw.get('incidents', {})
    runbooks = raw.get('runbooks', {})
    return CallSiteConfig(
        incidents=SearchParams(
            min_score=float(incidents.get('min_score', DEFAULT_MIN_SCORE)),
            limit=int(incidents.get('limit', DEFAULT_INCIDENT_LIMIT)),
        ),
        runbooks=SearchParams(
            min_score=float(runbooks.get('min_score', DEFAULT_MIN_SCORE)),
            limit=int(runbooks.get('limit', DEFAULT_RUNBOOK_LIMIT)),
        ),
    )


def build_incident_query(candidate) -> str:
    return (
        f"Incident: {candidate.title or ''}\n"
        f"Description: {candidate.description or ''}\n"
        f"Severity: {candidate.severity}\n"
        f"Status: {candidate.status}"
    ).strip()


def build_runbook_query(candidate) -> str:
    query = f"Runbook: {candidate.title or ''}\nContent: {candidate.content or ''}"
    tags = _format_tags(getattr(candidate, 'tags', None))
    if tags:
        query += f"\nTags: {tags}"
    return query.strip()


def _format_tags(tags) -> str:
    if not tags:
        return ''
    if isinstance(tags, (list, tuple)):
        return ', '.join(str(tag).strip() for tag in tags if str(tag).strip())
    return str(tags).strip()


class RetrievalService:
    """Retrieve similar incidents and runbook fragments for a candidate record."""

    def __init__(
        self,
        embedding_model: Optional[EmbeddingModel] = None,
        incident_store: Optional[EmbeddingStore] = None,
        runbook_store: Optional[EmbeddingStore] = None,
        config: Optional[RetrievalConfig] = None,
    ):
        self.embedding_model = embedding_model or get_embedding_model()
        self.incident_store = incident_store or get_incident_store()
        self.runbook_store = runbook_store or get_runbook_store()
        self.config = config or RetrievalConfig.from_settings()

    def retrieve_for_incident(self, candidate) -> RetrievalResult:
        """
        Find context for an incident (saved or not).

        Args:
            candidate: Object with title, description, severity and status

        Returns:
            RetrievalResult with a RetrievalContext, or an error:
            INVALID_QUERY, MODEL_UNAVAILABLE, SEARCH_FAILED
        """
        if is_blank(candidate.title, candidate.description):
            return RetrievalResult.failure(RetrievalErrorKind.INVALID_QUERY)

        return self._retrieve(build_incident_query(candidate), self.config.for_incident)

    def retrieve_for_fragment(self, candidate) -> RetrievalResult:
        """
        Find context for a runbook fragment (saved or not).

        Args:
            candidate: Object with title, content and optional tags
        """
        if is_blank(candidate.title, candidate.content):
            return RetrievalResult.failure(RetrievalErrorKind.INVALID_QUERY)

        return self._retrieve(build_runbook_query(candidate), self.config.for_fragment)

    def _retrieve(self, query_text: str, call_site: CallSiteConfig) -> RetrievalResult:
        try:
            query_vector = vector_codec.coerce(self.embedding_model.embed(query_text))
        except Exception as e:
            logger.warning(
                "retrieval_model_unavailable",
                exc_info=True,
                extra={'query_length': len(query_text)},
            )
            return RetrievalResult.failure(RetrievalErrorKind.MODEL_UNAVAILABLE, str(e))

        try:
            incident_hits = self.incident_store.find_similar(
                query_vector,
                min_score=call_site.incidents.min_score,
                limit=call_site.incidents.limit,
            )
            runbook_hits = self.runbook_store.find_similar(
                query_vector,
                min_score=call_site.runbooks.min_score,
                limit=call_site.runbooks.limit,
            )
        except SearchFailed as e:
            logger.warning("retrieval_search_failed", exc_info=True)
            return RetrievalResult.failure(RetrievalErrorKind.SEARCH_FAILED, str(e))

        context = RetrievalContext(
            similar_incident_matches=self._to_matches(incident_hits, call_site.incidents.min_score),
            similar_fragment_matches=self._to_matches(runbook_hits, call_site.runbooks.min_score),
            query_text=query_text,
        )

        logger.info(
            "retrieval_complete",
            extra={
                'incident_matches': len(context.similar_incident_matches),
                'fragment_matches': len(context.similar_fragment_matches),
            },
        )
        return RetrievalResult.success(context)

    def _to_matches(self, hits: List[ScoredRecord], min_score: float) -> List[RetrievalMatch]:
        matches = [
            RetrievalMatch(
                owner_id=record.owner_id,
                score=score,
                snippet=self._snippet(record.source_text),
                source_type=record.source_type,
            )
            for record, score in hits
        ]
        return self._apply_boosts(matches, min_score)

    def _apply_boosts(self, matches: List[RetrievalMatch], min_score: float) -> List[RetrievalMatch]:
        """
        Rescale scores by source type, after similarity ranking.

        Boosted scores are clamped to [-1, 1]; matches pushed below min_score
        are dropped. The sort is stable, so store order breaks ties.
        """
        boosts = self.config.source_type_boosts
        if not boosts:
            return matches

        boosted = []
        for match in matches:
            factor = boosts.get(match.source_type, 1.0)
            score = max(-1.0, min(1.0, match.score * factor))
            if score < min_score:
                continue
            boosted.append(RetrievalMatch(
                owner_id=match.owner_id,
                score=score,
                snippet=match.snippet,
                source_type=match.source_type,
            ))
        boosted.sort(key=lambda m: m.score, reverse=True)
        return boosted

    def _snippet(self, text: Optional[str]) -> Optional[str]:
        if text is None:
            return None
        return text[:self.config.snippet_length]


# Singleton instance
_retrieval_service = None


def get_retrieval_service() -> RetrievalService:
    """Get or create the retrieval service singleton"""
    global _retrieval_service
    if _retrieval_service is None:
        _retrieval_service = RetrievalService()
    return _retrieval_service
