"""Ranked candidate lookup over the waivers table."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any, List

from rapidfuzz.distance import Indel

from .config import Settings
from .errors import DataIntegrityError, ValidationError
from .formatting import normalise_query
from .models import SearchCandidate
from .store import WaiverStore

logger = logging.getLogger(__name__)

WORD_PATTERN = re.compile(r"[^\w]+", re.UNICODE)

CANDIDATE_COLUMNS = (
    "id, firstName, lastName, email, yearOfBirth, signatureDate, waiverYear, minorNames"
)


def _current_year() -> int:
    return date.today().year


def trigrams(text: str | None) -> List[str]:
    """Return the sorted set of word trigrams, padded the way pg_trgm pads them."""

    if not text:
        return []
    grams: set[str] = set()
    for word in WORD_PATTERN.sub(" ", text.lower()).split():
        padded = f"  {word} "
        for start in range(len(padded) - 2):
            grams.add(padded[start : start + 3])
    return sorted(grams)


def trigram_similarity(left: str | None, right: str | None) -> float:
    """Shared trigrams over all distinct trigrams of both strings, in ``[0, 1]``."""

    left_grams = trigrams(left)
    right_grams = trigrams(right)
    if not left_grams or not right_grams:
        return 0.0
    # Indel similarity of two sorted sets is their Dice coefficient.
    dice = Indel.normalized_similarity(left_grams, right_grams)
    return dice / (2 - dice)


def _compact_keys(row: Mapping[str, Any]) -> dict[str, Any]:
    return {
        str(key).strip('"`[]').replace("_", "").lower(): value for key, value in row.items()
    }


def project_candidate(
    row: Mapping[str, Any],
    *,
    current_year: int,
    score: float | None = None,
) -> SearchCandidate:
    """Convert a raw store row into a ``SearchCandidate``.

    Column names are matched regardless of quoting, casing or snake_case, so
    rows from any driver map onto the same shape.
    """

    fields = _compact_keys(row)
    try:
        record_id = int(fields["id"])
        waiver_year = int(fields["waiveryear"])
    except (KeyError, TypeError, ValueError) as exc:
        raise DataIntegrityError(f"Waiver row is missing id or waiver year: {row!r}") from exc

    first_name = str(fields.get("firstname") or "").strip()
    last_name = str(fields.get("lastname") or "").strip()
    year_of_birth = fields.get("yearofbirth")
    minor_names = fields.get("minornames")
    timestamp = fields.get("signaturedate", fields.get("signaturetimestamp"))
    return SearchCandidate(
        id=record_id,
        display_name=f"{first_name} {last_name}".strip(),
        first_name=first_name,
        last_name=last_name,
        email=fields.get("email"),
        year_of_birth="" if year_of_birth is None else str(year_of_birth),
        minor_names=minor_names or None,
        waiver_year=waiver_year,
        is_current_year=waiver_year == current_year,
        signature_timestamp="" if timestamp is None else str(timestamp),
        score=score,
    )


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class RankingQuery:
    """Searches stored waivers and orders the matches by relevance."""

    def __init__(
        self,
        store: WaiverStore,
        *,
        mode: str = "fuzzy",
        threshold: float = 0.3,
        limit: int = 50,
        list_limit: int = 200,
        min_length: int = 2,
        current_year: Callable[[], int] = _current_year,
    ) -> None:
        if mode not in {"fuzzy", "substring"}:
            raise ValueError(f"Unknown match mode '{mode}'")
        self._store = store
        self.mode = mode
        self.threshold = threshold
        self.limit = limit
        self.list_limit = list_limit
        self.min_length = min_length
        self._current_year = current_year

    @classmethod
    def from_settings(cls, store: WaiverStore, settings: Settings) -> "RankingQuery":
        return cls(
            store,
            mode=settings.match_mode,
            threshold=settings.similarity_threshold,
            limit=settings.search_limit,
            list_limit=settings.list_limit,
            min_length=settings.min_query_length,
        )

    def validate(self, query: str | None) -> str:
        """Return the normalised query or raise ``ValidationError``."""

        normalised = normalise_query(query)
        if len(normalised) < self.min_length:
            raise ValidationError(
                f"Search query must be at least {self.min_length} characters"
            )
        return normalised

    async def search(self, query: str | None) -> List[SearchCandidate]:
        term = self.validate(query)
        if self.mode == "substring":
            results = await self._search_substring(term)
        else:
            results = await self._search_fuzzy(term)
        logger.debug("ranking_search mode=%s query=%r results=%s", self.mode, term, len(results))
        return results

    async def list_recent(self, limit: int | None = None) -> List[SearchCandidate]:
        cap = min(limit, self.list_limit) if limit else self.list_limit
        rows = await self._store.fetch_all(
            f"SELECT {CANDIDATE_COLUMNS} FROM waivers ORDER BY signatureDate DESC LIMIT ?",
            (cap,),
        )
        year = self._current_year()
        return [project_candidate(row, current_year=year) for row in rows]

    async def _search_substring(self, term: str) -> List[SearchCandidate]:
        pattern = _like_pattern(term)
        rows = await self._store.fetch_all(
            f"""
            SELECT {CANDIDATE_COLUMNS}
            FROM waivers
            WHERE
                firstName LIKE ? ESCAPE '\\' OR
                lastName LIKE ? ESCAPE '\\' OR
                (firstName || ' ' || lastName) LIKE ? ESCAPE '\\' OR
                minorNames LIKE ? ESCAPE '\\'
            ORDER BY waiverYear DESC, signatureDate DESC
            LIMIT ?
            """,
            (pattern, pattern, pattern, pattern, self.limit),
        )
        year = self._current_year()
        return [project_candidate(row, current_year=year) for row in rows]

    def score_row(self, term: str, row: Mapping[str, Any]) -> float | None:
        """Return the relevance of ``row`` for ``term``, or ``None`` when it does not qualify."""

        fields = _compact_keys(row)
        first_name = str(fields.get("firstname") or "")
        last_name = str(fields.get("lastname") or "")
        values = [
            first_name,
            last_name,
            f"{first_name} {last_name}".strip(),
            str(fields.get("minornames") or ""),
            str(fields.get("yearofbirth") or ""),
        ]
        lowered = term.lower()
        similarities = [trigram_similarity(term, value) for value in values]
        best = max(similarities)
        if best > self.threshold:
            return best
        if any(lowered in value.lower() for value in values if value):
            return best
        return None

    async def _search_fuzzy(self, term: str) -> List[SearchCandidate]:
        rows = await self._store.fetch_all(f"SELECT {CANDIDATE_COLUMNS} FROM waivers")
        year = self._current_year()
        matches: List[SearchCandidate] = []
        for row in rows:
            score = self.score_row(term, row)
            if score is None:
                continue
            matches.append(project_candidate(row, current_year=year, score=round(score, 4)))

        matches.sort(key=lambda candidate: candidate.signature_timestamp, reverse=True)
        matches.sort(key=lambda candidate: (candidate.score or 0.0, candidate.waiver_year), reverse=True)
        return matches[: self.limit]
