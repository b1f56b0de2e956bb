"""
Shared fixtures for the translation memory unit tests.

``scripted`` registers a backend whose behaviour is set per service name,
so registry, aggregator, replication and bootstrap tests can make single
services fail, time out or freeze.
"""

import time
from typing import Dict, List, Sequence

import pytest

from ttmserver.base import TTMServer
from ttmserver.index import reset_memory_indexes
from ttmserver.models import BackendConfig, Suggestion, TranslationUnit, UpdateResult
from ttmserver.registry import register_backend


class ScriptedTTMServer(TTMServer):
    """Readable and writable backend driven by ``behaviours[name]``.

    Keys understood in a behaviour:
        update: "ok" | "raise" | "fail"
        query: list of suggestion dicts, or an exception instance to raise
        sleep: seconds to block inside query()
        frozen: bool
    """

    behaviours: Dict[str, dict] = {}
    updates: Dict[str, List[TranslationUnit]] = {}
    queried: List[str] = []
    operations: Dict[str, List[str]] = {}
    instances: Dict[str, "ScriptedTTMServer"] = {}

    def __init__(self, config: BackendConfig, wiki_id: str = "default", timeout: float = 10.0):
        super().__init__(config, wiki_id)
        self.timeout = timeout
        ScriptedTTMServer.instances[config.name] = self

    @property
    def behaviour(self) -> dict:
        return self.behaviours.get(self.name, {})

    def _op(self, op: str) -> None:
        self.operations.setdefault(self.name, []).append(op)

    def query(self, source_language: str, target_language: str, text: str) -> List[Suggestion]:
        self.queried.append(self.name)
        if self.behaviour.get("sleep"):
            time.sleep(self.behaviour["sleep"])
        result = self.behaviour.get("query", [])
        if isinstance(result, Exception):
            raise result
        return [Suggestion(**item) for item in result]

    def update(self, unit: TranslationUnit) -> UpdateResult:
        from ttmserver.exceptions import TransientBackendError

        self.updates.setdefault(self.name, []).append(unit)
        mode = self.behaviour.get("update", "ok")
        if mode == "raise":
            raise TransientBackendError("index unavailable", service=self.name)
        if mode == "fail":
            return UpdateResult.failure("write rejected")
        return UpdateResult.applied()

    def is_frozen(self) -> bool:
        return bool(self.behaviour.get("frozen"))

    def begin_bootstrap(self) -> None:
        self._op("begin_bootstrap")

    def begin_batch(self) -> None:
        self._op("begin_batch")

    def batch_insert_definitions(self, batch: Sequence[TranslationUnit]) -> None:
        self._op(f"definitions:{len(batch)}")

    def batch_insert_translations(self, batch: Sequence[TranslationUnit]) -> None:
        self._op(f"translations:{len(batch)}")

    def end_batch(self) -> None:
        self._op("end_batch")

    def end_bootstrap(self) -> None:
        self._op("end_bootstrap")

    def set_do_reindex(self) -> None:
        self._op("set_do_reindex")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def clean_memory_indexes():
    """memory:// indexes are process-wide; start every test empty."""
    reset_memory_indexes()
    yield
    reset_memory_indexes()


@pytest.fixture
def scripted():
    """The scripted backend class, registered as ``"class": "scripted"``."""
    register_backend("scripted", ScriptedTTMServer)
    ScriptedTTMServer.behaviours = {}
    ScriptedTTMServer.updates = {}
    ScriptedTTMServer.queried = []
    ScriptedTTMServer.operations = {}
    ScriptedTTMServer.instances = {}
    return ScriptedTTMServer
