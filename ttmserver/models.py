"""
Translation Memory data types
Plain dataclasses shared by backends, the aggregator and the replication jobs.
"""
import re
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .exceptions import ConfigurationError


TTM_TYPES = ("ttmserver", "remote-ttmserver")

# Keys BackendConfig understands; everything else ends up in ``extra``.
_KNOWN_KEYS = {
    "type", "class", "writable", "mirrors", "public", "cutoff",
    "url", "index", "use_wikimedia_extra", "shards", "replicas",
    "database_url", "timeout", "display_name",
}

_LANGUAGE_SUFFIX = re.compile(r"/[^/]+$")


def strip_language(document_id: str) -> str:
    """'wiki-Foo-12/de' -> 'wiki-Foo-12'"""
    return _LANGUAGE_SUFFIX.sub("", document_id)


# ==================== CONFIGURATION ====================

@dataclass(frozen=True)
class BackendConfig:
    """
    Static configuration of one translation service.

    Loaded once from settings and never mutated.
    """
    name: str
    type: str = ""
    class_name: Optional[str] = None
    writable: Optional[bool] = None
    mirrors: Optional[Tuple[str, ...]] = None
    public: bool = False
    cutoff: float = 0.65
    url: Optional[str] = None
    index: str = "ttmserver"
    use_wikimedia_extra: bool = False
    shards: int = 1
    replicas: str = "0-2"
    database_url: Optional[str] = None
    timeout: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(
        cls,
        name: str,
        data: Any,
        default_cutoff: float = 0.65,
    ) -> "BackendConfig":
        """Build from a raw settings entry; rejects anything that is not a mapping."""
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"Invalid configuration for name '{name}'", service=name)

        writable = data.get("writable")
        if writable is not None and not isinstance(writable, bool):
            raise ConfigurationError(
                f"'{name}': writable must be true or false", service=name
            )

        mirrors = data.get("mirrors")
        if mirrors is not None:
            if isinstance(mirrors, str) or not isinstance(mirrors, (list, tuple)):
                raise ConfigurationError(f"'{name}': mirrors must be a list", service=name)
            mirrors = tuple(mirrors)

        if writable is not None and mirrors is not None:
            raise ConfigurationError(
                f"'{name}': TTM server configurations cannot use both writable and mirrors parameter",
                service=name,
            )

        return cls(
            name=name,
            type=data.get("type", "") or "",
            class_name=data.get("class"),
            writable=writable,
            mirrors=mirrors,
            public=bool(data.get("public", False)),
            cutoff=float(data.get("cutoff", default_cutoff)),
            url=data.get("url"),
            index=data.get("index", "ttmserver"),
            use_wikimedia_extra=bool(data.get("use_wikimedia_extra", False)),
            shards=int(data.get("shards", 1)),
            replicas=str(data.get("replicas", "0-2")),
            database_url=data.get("database_url"),
            timeout=data.get("timeout"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )

    @property
    def is_ttm_type(self) -> bool:
        return self.type in TTM_TYPES


# ==================== TRANSLATION UNITS ====================

@dataclass(frozen=True)
class TranslationUnit:
    """
    One translatable message in one language.

    ``text`` None means the translation was retracted (fuzzy or deleted).
    """
    location: str
    language: str
    text: Optional[str] = None
    source_language: Optional[str] = None
    revision_id: int = 0
    wiki: str = "default"
    uri: str = ""
    groups: Tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return bool(self.location) and self.language != ""

    @property
    def is_definition(self) -> bool:
        return self.language == self.source_language

    @property
    def title(self) -> str:
        """Full title of this unit, e.g. 'MediaWiki:Foo/de'."""
        return f"{self.location}/{self.language}"

    def document_id(self) -> str:
        """Index key; the revision keeps concurrent edits from colliding."""
        return f"{self.wiki}-{self.location}-{self.revision_id}/{self.language}"


# ==================== RESULTS ====================

class UpdateStatus(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"  # invalid unit, nothing to do
    FAILED = "failed"


@dataclass
class UpdateResult:
    """Outcome of a backend write. Only FAILED is retried."""
    status: UpdateStatus
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == UpdateStatus.FAILED

    @classmethod
    def applied(cls) -> "UpdateResult":
        return cls(UpdateStatus.APPLIED)

    @classmethod
    def skipped(cls, reason: Optional[str] = None) -> "UpdateResult":
        return cls(UpdateStatus.SKIPPED, reason)

    @classmethod
    def failure(cls, error: str) -> "UpdateResult":
        return cls(UpdateStatus.FAILED, error)


@dataclass
class Suggestion:
    """A translation memory suggestion."""
    source: str
    target: str
    quality: float
    wiki: str = ""
    location: str = ""
    context: str = ""
    uri: str = ""
    local: bool = False
    service: str = ""
    source_language: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Suggestion":
        """Decode a wire suggestion. ``local`` is the sender's view and is not read."""
        return cls(
            source=data.get("source", ""),
            target=data.get("target", ""),
            quality=float(data.get("quality", 0.0)),
            wiki=data.get("wiki", ""),
            location=data.get("location", ""),
            context=data.get("context", ""),
            uri=data.get("uri", ""),
            service=data.get("service", ""),
            source_language=data.get("source_language", ""),
        )


# ==================== INDEX RECORDS ====================

@dataclass
class Document:
    """An index document: id plus stored fields."""
    id: str
    source: Dict[str, Any]


@dataclass
class Hit:
    id: str
    score: float
    source: Dict[str, Any] = field(default_factory=dict)
    highlights: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class SearchPage:
    hits: List[Hit]
    total: int

    def __len__(self) -> int:
        return len(self.hits)


@dataclass
class TextSearchQuery:
    """Parsed full-text search request (the Searchable capability)."""
    fields: Dict[str, List[str]]  # analyzer field -> words
    match: str = "all"  # all | any
    language: str = ""
    group: str = ""
    limit: int = 25
    offset: int = 0
    highlight: Tuple[str, str] = ("", "")
    locations: List[str] = field(default_factory=list)  # exact localid matches


@dataclass
class TextSearchResult:
    hits: List[Hit]
    total: int
    facets: Dict[str, Dict[str, int]] = field(default_factory=dict)
