from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .normalize import (
    NAME_ONLY_HEADER,
    is_first_name_header,
    is_last_name_header,
    primary_term,
)

RATING_KINDS = ("standard", "rapid", "blitz")

CANDIDATE_FIELDS = [
    "fide_id",
    "name",
    "title",
    "trainer_title",
    "federation",
    "standard",
    "rapid",
    "blitz",
    "birth_year",
]


class Provenance(str, Enum):
    """Which search strategy produced a resolution."""

    PRIMARY = "lastName, firstName"
    REVERSED = "firstName lastName (reversed)"
    NONE = "none"
    ERROR = "error"


@dataclass(frozen=True)
class Candidate:
    """One registry entry returned for a lookup term."""

    fide_id: str = ""
    name: str = ""
    title: str = ""
    trainer_title: str = ""
    federation: str = ""
    standard: str = ""
    rapid: str = ""
    blitz: str = ""
    birth_year: str = ""

    def rating(self, kind: str) -> str:
        if kind not in RATING_KINDS:
            raise ValueError(f"Unknown rating kind: {kind}")
        return getattr(self, kind)

    def to_dict(self) -> Dict[str, str]:
        return {f: getattr(self, f) for f in CANDIDATE_FIELDS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candidate":
        return cls(**{f: data.get(f, "") or "" for f in CANDIDATE_FIELDS})


@dataclass(frozen=True)
class Resolution:
    candidates: Tuple[Candidate, ...] = ()
    accurate: bool = False
    provenance: Provenance = Provenance.NONE
    cached: bool = False

    @property
    def best(self) -> Optional[Candidate]:
        return self.candidates[0] if self.candidates else None

    @property
    def label(self) -> str:
        if self.cached:
            return f"{self.provenance.value} (cached)"
        return self.provenance.value

    def as_cached(self) -> "Resolution":
        return replace(self, cached=True)

    @classmethod
    def empty(cls, provenance: Provenance = Provenance.NONE) -> "Resolution":
        return cls(candidates=(), accurate=False, provenance=provenance)

    def to_dict(self) -> Dict[str, Any]:
        # The cached flag is a read-time annotation and is never persisted.
        return {
            "players": [c.to_dict() for c in self.candidates],
            "is_accurate": self.accurate,
            "search_order": self.provenance.name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Resolution":
        return cls(
            candidates=tuple(Candidate.from_dict(p) for p in data["players"]),
            accurate=bool(data["is_accurate"]),
            provenance=Provenance[data["search_order"]],
        )


@dataclass
class Row:
    """One roster line: ordered column -> value cells plus its resolution."""

    index: int
    cells: Dict[str, str] = field(default_factory=dict)
    resolution: Optional[Resolution] = None

    def _find(self, predicate) -> str:
        for header, value in self.cells.items():
            if predicate(header) and value:
                return value
        return ""

    @property
    def first_name(self) -> str:
        return self._find(is_first_name_header)

    @property
    def last_name(self) -> str:
        last = self._find(is_last_name_header)
        if last:
            return last
        has_name_columns = any(
            is_first_name_header(h) or is_last_name_header(h) for h in self.cells
        )
        if not has_name_columns:
            return self.cells.get(NAME_ONLY_HEADER, "")
        return ""

    @property
    def has_name_pair(self) -> bool:
        return bool(self.first_name and self.last_name)

    @property
    def search_term(self) -> str:
        if not self.has_name_pair:
            return ""
        return primary_term(self.last_name, self.first_name)


def _is_str(v: Any) -> bool:
    return isinstance(v, str)


def validate_candidate(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Every field is optional but must be a string when present.
    """
    errors: List[str] = []
    if not isinstance(data, dict):
        return ["Candidate must be an object"]
    for f in CANDIDATE_FIELDS:
        if f in data and not _is_str(data[f]):
            errors.append(f"Field '{f}' must be a string if provided")
    return errors


def validate_resolution(data: Dict[str, Any]) -> List[str]:
    """Validate a serialized resolution read back from the cache."""
    errors: List[str] = []
    if not isinstance(data, dict):
        return ["Resolution must be an object"]

    players = data.get("players")
    if not isinstance(players, list):
        errors.append("Field 'players' must be a list")
    else:
        for i, p in enumerate(players):
            errors.extend(f"players[{i}]: {e}" for e in validate_candidate(p))

    if not isinstance(data.get("is_accurate"), bool):
        errors.append("Field 'is_accurate' must be a boolean")

    order = data.get("search_order")
    if order not in Provenance.__members__:
        errors.append(f"Field 'search_order' must be one of {sorted(Provenance.__members__)}")

    return errors
