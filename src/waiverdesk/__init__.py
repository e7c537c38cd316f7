"""Core package for the waiver capture and admin search service."""

from .cache import SuggestionCache
from .client import WaiverSearchClient
from .config import Settings, get_settings
from .debounce import CancellationToken, DebounceController
from .formatting import format_signature_date, highlight_match
from .health import SearchHealthMonitor
from .models import SearchCandidate
from .ranking import RankingQuery
from .store import WaiverStore
from .typeahead import TypeaheadSession, TypeaheadState

__all__ = [
    "CancellationToken",
    "DebounceController",
    "RankingQuery",
    "SearchCandidate",
    "SearchHealthMonitor",
    "Settings",
    "SuggestionCache",
    "TypeaheadSession",
    "TypeaheadState",
    "WaiverSearchClient",
    "WaiverStore",
    "format_signature_date",
    "get_settings",
    "highlight_match",
]
