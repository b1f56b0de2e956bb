"""
Unit tests for ttmserver/replication: jobs, the in-memory queue and source,
and the coordinator's fan-out / narrowed retry behaviour.
"""

import logging

import pytest

from ttmserver.exceptions import ConfigurationError
from ttmserver.registry import BackendRegistry
from ttmserver.replication import (
    InMemoryJobQueue,
    InMemoryTranslationSource,
    JobCommand,
    ReplicationCoordinator,
    UpdateJob,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def source():
    source = InMemoryTranslationSource(wiki="w", uri_template="https://w.example/{location}/{language}")
    source.set_definition("Main_Page", "en", "Main page", groups=("core",))
    source.set_translation("Main_Page", "de", "Hauptseite")
    source.set_translation("Main_Page", "fr", "Accueil")
    return source


@pytest.fixture
def queue():
    return InMemoryJobQueue()


@pytest.fixture
def registry(scripted):
    return BackendRegistry({
        "primary": {"type": "ttmserver", "class": "scripted", "mirrors": ["secondary"]},
        "secondary": {"type": "ttmserver", "class": "scripted"},
    }, default="primary", wiki_id="w")


@pytest.fixture
def coordinator(registry, source, queue):
    return ReplicationCoordinator(registry, source, queue, max_error_retry=4)


# ---------------------------------------------------------------------------
# UpdateJob
# ---------------------------------------------------------------------------

class TestUpdateJob:
    def test_fan_out_by_default(self):
        job = UpdateJob("Main_Page", "de")
        assert job.is_fan_out
        assert job.command == JobCommand.REFRESH
        assert job.title == "Main_Page/de"

    def test_narrowed(self):
        job = UpdateJob("Main_Page", "de").narrowed("secondary")
        assert job.service == "secondary"
        assert job.error_count == 1
        assert not job.is_fan_out
        assert job.retried().error_count == 2

    def test_params(self):
        job = UpdateJob("Main_Page", "de", JobCommand.DELETE, service="secondary", error_count=2)
        params = job.to_params()
        assert params == {
            "location": "Main_Page",
            "language": "de",
            "command": "delete",
            "errorCount": 2,
            "service": "secondary",
        }
        assert UpdateJob.from_params(params) == job

    def test_fan_out_params_have_no_service(self):
        assert "service" not in UpdateJob("Main_Page", "de").to_params()

    def test_unknown_command(self):
        with pytest.raises(ConfigurationError):
            UpdateJob.from_params({"location": "A", "language": "de", "command": "explode"})


# ---------------------------------------------------------------------------
# InMemoryTranslationSource
# ---------------------------------------------------------------------------

class TestTranslationSource:
    def test_unit(self, source):
        unit = source.get_unit("Main_Page", "de")
        assert unit.text == "Hauptseite"
        assert unit.source_language == "en"
        assert unit.revision_id == 1
        assert unit.uri == "https://w.example/Main_Page/de"
        assert unit.groups == ("core",)

    def test_definition_first(self, source):
        assert [u.language for u in source.get_units("Main_Page")] == ["en", "de", "fr"]

    def test_fuzzy_served_without_text(self, source):
        source.set_translation("Main_Page", "de", "Hauptseite (alt)", fuzzy=True)
        assert source.get_unit("Main_Page", "de").text is None

    def test_definition_change_bumps_revision(self, source):
        source.set_definition("Main_Page", "en", "Front page")
        assert source.get_unit("Main_Page", "de").revision_id == 2

    def test_translation_without_definition(self, source):
        with pytest.raises(KeyError):
            source.set_translation("Unknown", "de", "x")

    def test_translation_in_source_language(self, source):
        with pytest.raises(ValueError):
            source.set_translation("Main_Page", "en", "x")

    def test_from_records(self):
        source = InMemoryTranslationSource.from_records([
            {"location": "A", "language": "de", "text": "Hallo"},
            {"location": "A", "language": "en", "text": "Hello", "definition": True},
            {"location": "A", "language": "fr", "text": "Salut", "fuzzy": True},
        ])
        assert len(source) == 3
        assert [u.text for u in source.iter_units()] == ["Hallo", "Hello", None]


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------

class TestQueue:
    def test_fifo(self, queue):
        queue.submit(UpdateJob("A", "de"))
        queue.submit(UpdateJob("B", "de"))
        assert len(queue) == 2
        assert queue.pop().location == "A"
        assert queue.pop().location == "B"
        assert queue.pop() is None
        assert len(queue.history) == 2

    def test_drain_limit(self, queue, coordinator):
        for location in ("Main_Page", "Main_Page", "Main_Page"):
            queue.submit(UpdateJob(location, "de"))
        assert queue.drain(coordinator, limit=2) == 2
        assert len(queue) == 1


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class TestTrigger:
    def test_translation_refresh(self, coordinator, queue):
        job = coordinator.on_translation_changed("Main_Page", "de", "Hauptseite")
        assert job.command == JobCommand.REFRESH
        assert job.is_fan_out
        assert queue.pop() == job

    def test_definition_rebuild(self, coordinator):
        assert coordinator.on_translation_changed("Main_Page", "en", "Main page").command == JobCommand.REBUILD

    def test_removal_delete(self, coordinator):
        assert coordinator.on_translation_changed("Main_Page", "de", None).command == JobCommand.DELETE

    def test_max_error_retry_validated(self, registry, source, queue):
        with pytest.raises(ConfigurationError):
            ReplicationCoordinator(registry, source, queue, max_error_retry=0)


class TestFanOut:
    def test_all_succeed(self, coordinator, queue, scripted):
        outcome = coordinator.run(UpdateJob("Main_Page", "de"))
        assert outcome.succeeded == ["primary", "secondary"]
        assert outcome.resent == []
        assert len(queue) == 0
        for name in ("primary", "secondary"):
            assert [u.text for u in scripted.updates[name]] == ["Hauptseite"]

    def test_one_backend_fails(self, coordinator, queue, scripted):
        scripted.behaviours = {"secondary": {"update": "raise"}}
        outcome = coordinator.run(UpdateJob("Main_Page", "de"))

        assert outcome.succeeded == ["primary"]
        assert len(queue) == 1
        retry = queue.pop()
        assert retry.to_params() == {
            "location": "Main_Page",
            "language": "de",
            "command": "refresh",
            "errorCount": 1,
            "service": "secondary",
        }

    def test_every_backend_fails(self, coordinator, queue, scripted):
        scripted.behaviours = {"primary": {"update": "raise"}, "secondary": {"update": "fail"}}
        outcome = coordinator.run(UpdateJob("Main_Page", "de"))

        assert outcome.succeeded == []
        assert [job.service for job in outcome.resent] == ["primary", "secondary"]
        assert [job.error_count for job in outcome.resent] == [1, 1]
        assert len(queue) == 2

    def test_frozen_backend_counts_as_failure(self, coordinator, queue, scripted):
        scripted.behaviours = {"secondary": {"frozen": True}}
        outcome = coordinator.run(UpdateJob("Main_Page", "de"))
        assert outcome.succeeded == ["primary"]
        assert "secondary" not in scripted.updates
        assert queue.pop().service == "secondary"

    def test_rebuild_writes_definition_and_translations(self, coordinator, scripted):
        coordinator.run(UpdateJob("Main_Page", "en", JobCommand.REBUILD))
        assert [u.language for u in scripted.updates["primary"]] == ["en", "de", "fr"]

    def test_delete_sends_retraction(self, coordinator, source, scripted):
        source.remove_translation("Main_Page", "de")
        coordinator.run(UpdateJob("Main_Page", "de", JobCommand.DELETE))
        sent = scripted.updates["primary"][0]
        assert sent.text is None
        assert sent.source_language == "en"

    def test_refresh_of_fuzzy_translation(self, coordinator, source, scripted):
        source.set_translation("Main_Page", "de", "Hauptseite", fuzzy=True)
        coordinator.run(UpdateJob("Main_Page", "de"))
        assert scripted.updates["primary"][0].text is None

    def test_nothing_writable(self, source, queue, scripted):
        registry = BackendRegistry({"primary": {"type": "ttmserver", "class": "scripted"}})
        outcome = ReplicationCoordinator(registry, source, queue).run(UpdateJob("Main_Page", "de"))
        assert outcome.succeeded == []
        assert scripted.updates == {}


class TestNarrowedJobs:
    def test_only_named_service(self, coordinator, queue, scripted):
        outcome = coordinator.run(UpdateJob("Main_Page", "de", service="secondary", error_count=1))
        assert outcome.succeeded == ["secondary"]
        assert list(scripted.updates) == ["secondary"]
        assert len(queue) == 0

    def test_resent_with_incremented_count(self, coordinator, queue, scripted):
        scripted.behaviours = {"secondary": {"update": "raise"}}
        coordinator.run(UpdateJob("Main_Page", "de", service="secondary", error_count=1))
        retry = queue.pop()
        assert retry.service == "secondary"
        assert retry.error_count == 2
        assert "primary" not in scripted.updates

    def test_abandoned_after_max_retries(self, coordinator, queue, scripted, caplog):
        scripted.behaviours = {"secondary": {"update": "raise"}}
        with caplog.at_level(logging.ERROR):
            outcome = coordinator.run(UpdateJob("Main_Page", "de", service="secondary", error_count=4))

        assert outcome.abandoned == ["secondary"]
        assert outcome.resent == []
        assert len(queue) == 0
        assert "Abandoning Main_Page/de on secondary" in caplog.text

    def test_unknown_service(self, coordinator):
        with pytest.raises(ConfigurationError):
            coordinator.run(UpdateJob("Main_Page", "de", service="ghost", error_count=1))

    def test_read_only_service(self, source, queue):
        registry = BackendRegistry({"remote": {"type": "remote-ttmserver", "url": "https://other.example"}})
        coordinator = ReplicationCoordinator(registry, source, queue)
        with pytest.raises(ConfigurationError, match="not writable"):
            coordinator.run(UpdateJob("Main_Page", "de", service="remote", error_count=1))

    def test_drain_until_abandoned(self, coordinator, queue, scripted):
        scripted.behaviours = {"secondary": {"update": "raise"}}
        queue.submit(UpdateJob("Main_Page", "de"))

        assert queue.drain(coordinator) == 5
        assert [(j.service, j.error_count) for j in queue.history] == [
            (None, 0), ("secondary", 1), ("secondary", 2), ("secondary", 3), ("secondary", 4),
        ]
        assert len(scripted.updates["primary"]) == 1
        assert len(scripted.updates["secondary"]) == 5


class TestWithIndexBackends:
    def test_change_reaches_default_and_mirror(self, source, queue):
        registry = BackendRegistry({
            "primary": {"type": "ttmserver", "class": "elasticsearch", "url": "memory://", "mirrors": ["mirror"]},
            "mirror": {"type": "ttmserver", "class": "elasticsearch", "url": "memory://", "index": "mirror"},
        }, default="primary", wiki_id="w")
        coordinator = ReplicationCoordinator(registry, source, queue)

        coordinator.on_translation_changed("Main_Page", "en", "Main page")
        queue.drain(coordinator)

        for name in ("primary", "mirror"):
            client = registry.get(name).client
            assert sorted(client.all_documents()) == ["w-Main_Page-1/de", "w-Main_Page-1/en", "w-Main_Page-1/fr"]

        result = registry.get("mirror").query("en", "de", "Main page")
        assert [s.target for s in result] == ["Hauptseite"]
