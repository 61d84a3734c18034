"""
Shared test fixtures and helpers for retrieval engine tests.
"""
import re
from typing import List, Optional

from apps.incidents.models import Diagnosis, Incident, Severity
from apps.rag.embedding_store import EmbeddingStore, InMemorySearcher
from apps.rag.models import IncidentEmbedding, RunbookEmbedding
from apps.runbooks.models import RunbookFragment

# One dimension per keyword; EMBEDDING_DIMENSION is 8 in test settings
KEYWORDS = ['database', 'connection', 'pool', 'timeout', 'disk', 'space', 'usage', 'memory']
TEST_DIMENSION = len(KEYWORDS)


class KeywordEmbeddingModel:
    """
    Deterministic fake embedding model: component i counts occurrences of
    KEYWORDS[i] in the text. Text without keywords embeds to the zero vector.
    """

    def __init__(self):
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        tokens = re.findall(r'[a-z]+', text.lower())
        return [float(tokens.count(keyword)) for keyword in KEYWORDS]


class FailingEmbeddingModel(KeywordEmbeddingModel):
    """
    Keyword model that raises on a given call number (1-based),
    or on every call when fail_on_call is None.
    """

    def __init__(self, fail_on_call: Optional[int] = None, exc: Exception = None):
        super().__init__()
        self.fail_on_call = fail_on_call
        self.exc = exc or RuntimeError("model crashed")

    def embed(self, text: str) -> List[float]:
        call_number = len(self.calls) + 1
        if self.fail_on_call is None or call_number == self.fail_on_call:
            self.calls.append(text)
            raise self.exc
        return super().embed(text)


def make_stores(searcher=None, dimension: int = TEST_DIMENSION):
    """Create (incident_store, runbook_store) sharing one searcher."""
    searcher = searcher or InMemorySearcher()
    return (
        EmbeddingStore(IncidentEmbedding, searcher, dimension=dimension),
        EmbeddingStore(RunbookEmbedding, searcher, dimension=dimension),
    )


def make_incident(title='Database connection pool exhausted', description='', **kwargs):
    kwargs.setdefault('severity', Severity.HIGH)
    return Incident.objects.create(title=title, description=description, **kwargs)


def make_fragment(title='Database connection pool tuning', content='', tags=None):
    return RunbookFragment.objects.create(title=title, content=content, tags=tags or [])


def make_diagnosis(incident, root_cause='Pool size too small', steps=None, verified=True):
    return Diagnosis.objects.create(
        incident=incident,
        suggested_root_cause=root_cause,
        remediation_steps=steps if steps is not None else ['Raise pool size', 'Restart app'],
        verified=verified,
    )
