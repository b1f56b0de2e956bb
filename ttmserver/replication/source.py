"""
Translation source: where jobs and bootstrap read the current texts from.
"""

import json
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from ..models import TranslationUnit


@runtime_checkable
class TranslationSource(Protocol):
    """Read access to the authoritative message store."""

    def get_source_language(self, location: str) -> Optional[str]: ...

    def get_unit(self, location: str, language: str) -> Optional[TranslationUnit]: ...

    def get_units(self, location: str) -> List[TranslationUnit]: ...

    def iter_units(self) -> Iterator[TranslationUnit]: ...


class InMemoryTranslationSource:
    """
    Dict-backed message store.

    Fuzzy translations are kept but served with ``text=None``, as they must
    not be suggested to anybody.
    """

    def __init__(self, wiki: str = "default", uri_template: str = ""):
        """
        Args:
            wiki: Origin id of the stored units
            uri_template: Format string with ``{location}`` and ``{language}``
        """
        self.wiki = wiki
        self.uri_template = uri_template
        self._source_languages: Dict[str, str] = {}
        self._revisions: Dict[str, int] = {}
        self._groups: Dict[str, Tuple[str, ...]] = {}
        self._texts: Dict[Tuple[str, str], Tuple[str, bool]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_records(
        cls, records: Iterable[Mapping[str, Any]], wiki: str = "default", uri_template: str = ""
    ) -> "InMemoryTranslationSource":
        """
        Build from plain records.

        Each record has location, language and text; definitions carry
        ``"definition": true``, outdated translations ``"fuzzy": true``.
        """
        source = cls(wiki=wiki, uri_template=uri_template)
        records = list(records)
        for record in records:
            if record.get("definition"):
                source.set_definition(
                    record["location"], record["language"], record["text"], tuple(record.get("groups", ()))
                )
        for record in records:
            if not record.get("definition"):
                source.set_translation(
                    record["location"], record["language"], record["text"], fuzzy=bool(record.get("fuzzy"))
                )
        return source

    @classmethod
    def load_json(cls, path: Path, wiki: str = "default", uri_template: str = "") -> "InMemoryTranslationSource":
        """Load a JSON array of records, see from_records."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{path}: expected a JSON array of records")
        return cls.from_records(data, wiki=wiki, uri_template=uri_template)

    def set_definition(self, location: str, language: str, text: str, groups: Tuple[str, ...] = ()) -> None:
        """Store a definition; every change bumps the revision."""
        with self._lock:
            self._source_languages[location] = language
            self._revisions[location] = self._revisions.get(location, 0) + 1
            self._groups[location] = tuple(groups)
            self._texts[(location, language)] = (text, False)

    def set_translation(self, location: str, language: str, text: str, fuzzy: bool = False) -> None:
        with self._lock:
            if location not in self._source_languages:
                raise KeyError(f"No definition for {location}")
            if language == self._source_languages[location]:
                raise ValueError(f"{location}/{language} is the definition")
            self._texts[(location, language)] = (text, fuzzy)

    def remove_translation(self, location: str, language: str) -> bool:
        with self._lock:
            return self._texts.pop((location, language), None) is not None

    def get_source_language(self, location: str) -> Optional[str]:
        return self._source_languages.get(location)

    def _unit(self, location: str, language: str) -> Optional[TranslationUnit]:
        entry = self._texts.get((location, language))
        if entry is None:
            return None
        text, fuzzy = entry
        return TranslationUnit(
            location=location,
            language=language,
            text=None if fuzzy else text,
            source_language=self._source_languages.get(location),
            revision_id=self._revisions.get(location, 0),
            wiki=self.wiki,
            uri=self.uri_template.format(location=location, language=language) if self.uri_template else "",
            groups=self._groups.get(location, ()),
        )

    def get_unit(self, location: str, language: str) -> Optional[TranslationUnit]:
        with self._lock:
            return self._unit(location, language)

    def get_units(self, location: str) -> List[TranslationUnit]:
        """Definition first, then translations by language."""
        with self._lock:
            source_language = self._source_languages.get(location)
            languages = sorted(
                (lang for loc, lang in self._texts if loc == location),
                key=lambda lang: (lang != source_language, lang),
            )
            return [self._unit(location, lang) for lang in languages]

    def iter_units(self) -> Iterator[TranslationUnit]:
        with self._lock:
            keys = sorted(self._texts)
        for location, language in keys:
            unit = self.get_unit(location, language)
            if unit is not None:
                yield unit

    def __len__(self) -> int:
        return len(self._texts)
