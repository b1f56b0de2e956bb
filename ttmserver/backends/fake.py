"""
No-op backend used when no real default service is configured.
"""

from typing import List, Optional, Sequence

from ..base import TTMServer
from ..models import BackendConfig, Suggestion, TranslationUnit, UpdateResult


class FakeWritableTTMServer(TTMServer):
    """Accepts every write and finds nothing."""

    def __init__(self, config: Optional[BackendConfig] = None, wiki_id: str = "default"):
        super().__init__(config or BackendConfig(name="fake", type="ttmserver", class_name="fake"), wiki_id)

    def query(self, source_language: str, target_language: str, text: str) -> List[Suggestion]:
        return []

    def update(self, unit: TranslationUnit) -> UpdateResult:
        return UpdateResult.applied()

    def begin_bootstrap(self) -> None:
        pass

    def begin_batch(self) -> None:
        pass

    def batch_insert_definitions(self, batch: Sequence[TranslationUnit]) -> None:
        pass

    def batch_insert_translations(self, batch: Sequence[TranslationUnit]) -> None:
        pass

    def end_batch(self) -> None:
        pass

    def end_bootstrap(self) -> None:
        pass

    def get_mirrors(self) -> List[str]:
        return []

    def set_do_reindex(self) -> None:
        pass
