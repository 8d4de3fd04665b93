from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

import pytest

from pipeline.config import PipelineConfig
from pipeline.context import RunContext
from pipeline.controller import Pipeline, RunOutcome
from pipeline.errors import ErrorKind, RunTimeoutError
from pipeline.models import ComposedItem
from pipeline.observer import NullObserver
from pipeline_fakes import (
    ExplodingObserver,
    FakeComposer,
    FakePublisher,
    FakeRepository,
    FakeSource,
    RecordingObserver,
    compose_for,
    make_item,
)

PUBLISHED_AT = datetime(2025, 3, 14, 9, 31, tzinfo=timezone.utc)


def _config(cutoff, **overrides) -> PipelineConfig:
    opts = dict(
        fetch_cutoff=cutoff,
        enable_composition=True,
        enable_persistence=True,
        enable_dedupe=True,
    )
    opts.update(overrides)
    return PipelineConfig(**opts)


def _pipeline(config, *, source, composer=None, repository=None, publisher=None, observer=None):
    return Pipeline(
        config,
        source=source,
        composer=composer if composer is not None else FakeComposer(),
        repository=repository if repository is not None else FakeRepository(),
        publisher=publisher or FakePublisher(),
        observer=observer,
        clock=lambda: PUBLISHED_AT,
    )


def test_full_run_persists_publishes_and_updates_every_item(cutoff, items):
    repo = FakeRepository()
    publisher = FakePublisher()
    composer = FakeComposer(compose_for("A", "C"))
    pipeline = _pipeline(_config(cutoff), source=FakeSource(items), composer=composer, repository=repo, publisher=publisher)

    report = pipeline.run()

    assert report.outcome is RunOutcome.SUCCEEDED
    assert report.ok
    assert (report.fetched, report.unique, report.composed) == (3, 3, 2)
    assert (report.persisted, report.published, report.updated) == (3, 3, 3)
    assert repo.created == ["hash-A", "hash-B", "hash-C"]
    assert repo.updated == ["hash-A", "hash-B", "hash-C"]
    assert repo.rows["hash-B"].composed_text is None
    assert repo.rows["hash-A"].composed_text == "Composed A"
    assert repo.rows["hash-A"].meta is not None and repo.rows["hash-A"].meta.tickers == ["AAPL"]
    for key, msg_id in (("A", "msg-1"), ("B", "msg-2"), ("C", "msg-3")):
        row = repo.rows[f"hash-{key}"]
        assert row.publication_id == msg_id
        assert row.published_at == PUBLISHED_AT
        assert row.channel_id == publisher.channel_id
    # composer saw the deduplicated batch in one call
    assert len(composer.calls) == 1
    assert [i.id for i in composer.calls[0]] == ["hash-A", "hash-B", "hash-C"]


def test_published_message_shape_with_composition(cutoff):
    publisher = FakePublisher()
    source = FakeSource([make_item("A", suspicious=True)])
    pipeline = _pipeline(_config(cutoff), source=source, composer=FakeComposer(compose_for("A")), publisher=publisher)

    pipeline.run()

    lines = publisher.texts[0].split("\n")
    assert lines[0] == "Hash: hash-A"
    assert lines[1] == "Provider: Reuters"
    assert lines[2].startswith("Meta: ")
    assert json.loads(lines[2][len("Meta: "):]) == {
        "tickers": ["AAPL"],
        "markets": ["US stocks"],
        "hashtags": ["#earnings"],
    }
    assert lines[3] == "IsSuspicious: true"
    assert lines[4] == "Composed A"


def test_second_run_with_same_items_is_noop(cutoff, items):
    repo = FakeRepository()
    publisher = FakePublisher()
    config = _config(cutoff)

    first = _pipeline(config, source=FakeSource(items), repository=repo, publisher=publisher).run()
    assert first.outcome is RunOutcome.SUCCEEDED
    created_before = list(repo.created)
    texts_before = list(publisher.texts)

    composer = FakeComposer()
    second = _pipeline(config, source=FakeSource(items), composer=composer, repository=repo, publisher=publisher).run()

    assert second.outcome is RunOutcome.NOOP
    assert second.ok
    assert (second.fetched, second.unique, second.persisted, second.published) == (3, 0, 0, 0)
    assert repo.created == created_before
    assert publisher.texts == texts_before
    assert composer.calls == []


def test_empty_fetch_touches_no_other_collaborator(cutoff):
    repo = FakeRepository()
    composer = FakeComposer()
    publisher = FakePublisher()
    source = FakeSource([])

    report = _pipeline(_config(cutoff), source=source, composer=composer, repository=repo, publisher=publisher).run()

    assert report.outcome is RunOutcome.NOOP
    assert report.fetched == 0
    assert source.calls == [cutoff]
    assert repo.find_calls == []
    assert repo.created == [] and repo.updated == []
    assert composer.calls == []
    assert publisher.texts == []


def test_recoverable_fetch_error_keeps_partial_items(cutoff):
    repo = FakeRepository()
    observer = RecordingObserver()
    failure = ConnectionError("one feed timed out")
    source = FakeSource([make_item("A")], error=failure)

    report = _pipeline(_config(cutoff), source=source, repository=repo, observer=observer).run()

    assert report.outcome is RunOutcome.SUCCEEDED
    assert report.fetch_error is failure
    assert report.error is None
    assert repo.created == ["hash-A"]
    assert failure in observer.captured


def test_fetch_error_without_items_is_noop(cutoff):
    source = FakeSource([], error=ConnectionError("all feeds down"))

    report = _pipeline(_config(cutoff), source=source).run()

    assert report.outcome is RunOutcome.NOOP
    assert isinstance(report.fetch_error, ConnectionError)


def test_raising_source_is_treated_as_recoverable(cutoff):
    report = _pipeline(_config(cutoff), source=FakeSource(raises=RuntimeError("boom"))).run()

    assert report.outcome is RunOutcome.NOOP
    assert str(report.fetch_error) == "boom"


def test_create_failure_on_second_record_stops_run(cutoff, items):
    repo = FakeRepository(fail_create_on=2)
    publisher = FakePublisher()

    report = _pipeline(_config(cutoff), source=FakeSource(items), repository=repo, publisher=publisher).run()

    assert report.outcome is RunOutcome.FAILED
    assert report.failed
    assert report.error.kind is ErrorKind.PERSIST_FAILED
    assert report.error.stage == "persist"
    assert str(report.error.cause) == "db write failed"
    assert repo.created == ["hash-A"]
    assert report.persisted == 1
    assert publisher.texts == []
    assert repo.updated == []


def test_items_not_saved_are_picked_up_on_next_run(cutoff, items):
    repo = FakeRepository(fail_create_on=2)
    config = _config(cutoff)
    _pipeline(config, source=FakeSource(items), repository=repo).run()

    repo.fail_create_on = None
    report = _pipeline(config, source=FakeSource(items), repository=repo).run()

    assert report.outcome is RunOutcome.SUCCEEDED
    assert report.unique == 2
    assert repo.created == ["hash-A", "hash-B", "hash-C"]


def test_publish_failure_keeps_earlier_publications_and_skips_update(cutoff, items):
    repo = FakeRepository()
    publisher = FakePublisher(fail_on=2)

    report = _pipeline(_config(cutoff), source=FakeSource(items), repository=repo, publisher=publisher).run()

    assert report.outcome is RunOutcome.FAILED
    assert report.error.kind is ErrorKind.PUBLISH_FAILED
    assert report.persisted == 3
    assert report.published == 1
    assert len(publisher.texts) == 1
    assert repo.updated == []
    # stored rows still carry the pre-publish state
    assert all(row.publication_id is None for row in repo.rows.values())


def test_persisted_but_unpublished_items_are_not_offered_again(cutoff, items):
    repo = FakeRepository()
    config = _config(cutoff)
    _pipeline(config, source=FakeSource(items), repository=repo, publisher=FakePublisher(fail_on=1)).run()

    publisher = FakePublisher()
    report = _pipeline(config, source=FakeSource(items), repository=repo, publisher=publisher).run()

    assert report.outcome is RunOutcome.NOOP
    assert publisher.texts == []


def test_update_failure_is_fatal(cutoff, items):
    repo = FakeRepository(fail_update_on=2)

    report = _pipeline(_config(cutoff), source=FakeSource(items), repository=repo).run()

    assert report.outcome is RunOutcome.FAILED
    assert report.error.kind is ErrorKind.UPDATE_FAILED
    assert repo.updated == ["hash-A"]
    assert report.updated == 1
    assert report.published == 3


def test_dedupe_failure_is_fatal(cutoff, items):
    repo = FakeRepository(fail_find=RuntimeError("db unavailable"))
    composer = FakeComposer()
    publisher = FakePublisher()

    report = _pipeline(_config(cutoff), source=FakeSource(items), composer=composer, repository=repo, publisher=publisher).run()

    assert report.outcome is RunOutcome.FAILED
    assert report.error.kind is ErrorKind.DEDUPE_FAILED
    assert report.error.stage == "dedupe"
    assert composer.calls == []
    assert publisher.texts == []


def test_compose_failure_is_fatal(cutoff, items):
    repo = FakeRepository()
    composer = FakeComposer(raises=ValueError("malformed response"))

    report = _pipeline(_config(cutoff), source=FakeSource(items), composer=composer, repository=repo).run()

    assert report.outcome is RunOutcome.FAILED
    assert report.error.kind is ErrorKind.COMPOSE_FAILED
    assert isinstance(report.error.__cause__, ValueError)
    assert repo.created == []


def test_composed_count_above_fetched_aborts_before_any_write(cutoff):
    repo = FakeRepository()
    publisher = FakePublisher()

    def _too_many(items):
        return [ComposedItem(id="hash-A", text="one"), ComposedItem(id="hash-A", text="two")]

    report = _pipeline(
        _config(cutoff),
        source=FakeSource([make_item("A")]),
        composer=FakeComposer(_too_many),
        repository=repo,
        publisher=publisher,
    ).run()

    assert report.outcome is RunOutcome.FAILED
    assert report.error.kind is ErrorKind.CONSISTENCY_VIOLATION
    assert repo.created == []
    assert publisher.texts == []


def test_suspicious_items_are_never_published_when_omitted(cutoff):
    repo = FakeRepository()
    publisher = FakePublisher()
    source = FakeSource([make_item("A", suspicious=True), make_item("B")])
    config = _config(cutoff, omit_suspicious=True)

    report = _pipeline(config, source=source, composer=FakeComposer(compose_for("A", "B")), repository=repo, publisher=publisher).run()

    assert report.outcome is RunOutcome.SUCCEEDED
    assert report.published == 1
    assert all("hash-A" not in text for text in publisher.texts)
    # skipped records are still written back with empty publication fields
    assert repo.updated == ["hash-A", "hash-B"]
    assert repo.rows["hash-A"].publication_id is None
    assert repo.rows["hash-B"].publication_id == "msg-1"


def test_empty_meta_items_are_not_published(cutoff, items):
    publisher = FakePublisher()
    composer = FakeComposer(compose_for("A", "B", empty_meta=("B",)))
    config = _config(cutoff, omit_empty_meta=True)

    report = _pipeline(config, source=FakeSource(items), composer=composer, publisher=publisher).run()

    # B has empty tags and C was not composed at all
    assert report.published == 1
    assert len(publisher.texts) == 1
    assert publisher.texts[0].startswith("Hash: hash-A")


def test_without_composition_message_is_title_and_description(cutoff):
    publisher = FakePublisher()
    config = _config(cutoff, enable_composition=False)
    pipeline = Pipeline(
        config,
        source=FakeSource([make_item("A")]),
        composer=None,
        repository=FakeRepository(),
        publisher=publisher,
    )

    report = pipeline.run()

    assert report.outcome is RunOutcome.SUCCEEDED
    assert report.composed == 0
    assert publisher.texts == ["Title A\nDescription A"]


def test_without_persistence_records_are_published_ephemerally(cutoff, items):
    publisher = FakePublisher()
    config = PipelineConfig(fetch_cutoff=cutoff)
    pipeline = Pipeline(config, source=FakeSource(items), composer=None, repository=None, publisher=publisher)

    report = pipeline.run()

    assert report.outcome is RunOutcome.SUCCEEDED
    assert (report.persisted, report.published, report.updated) == (0, 3, 0)
    assert len(publisher.texts) == 3


def test_missing_collaborators_are_rejected(cutoff):
    with pytest.raises(ValueError):
        Pipeline(_config(cutoff), source=FakeSource(), composer=None, repository=FakeRepository(), publisher=FakePublisher())
    with pytest.raises(ValueError):
        Pipeline(_config(cutoff), source=FakeSource(), composer=FakeComposer(), repository=None, publisher=FakePublisher())


def test_cancellation_during_fetch_is_fatal(cutoff, items):
    ctx = RunContext()
    publisher = FakePublisher()

    class _CancellingSource(FakeSource):
        def fetch_latest(self, ctx, cutoff):
            ctx.cancel()
            return super().fetch_latest(ctx, cutoff)

    report = _pipeline(_config(cutoff), source=_CancellingSource(items), publisher=publisher).run(ctx)

    assert report.outcome is RunOutcome.FAILED
    assert report.error.kind is ErrorKind.FETCH_FAILED
    assert report.error.cancelled
    assert publisher.texts == []


def test_timeout_mid_run_abandons_remaining_stages(cutoff, items):
    now = [0.0]
    ctx = RunContext.with_timeout(20, clock=lambda: now[0])
    repo = FakeRepository()

    def _slow_compose(batch):
        now[0] = 25.0
        return []

    report = _pipeline(_config(cutoff), source=FakeSource(items), composer=FakeComposer(_slow_compose), repository=repo).run(ctx)

    assert report.outcome is RunOutcome.FAILED
    assert report.error.kind is ErrorKind.PERSIST_FAILED
    assert report.error.cancelled
    assert isinstance(report.error.cause, RunTimeoutError)
    assert repo.created == []


def test_failing_observer_never_changes_the_outcome(cutoff, items):
    repo = FakeRepository()
    report = _pipeline(_config(cutoff), source=FakeSource(items), repository=repo, observer=ExplodingObserver()).run()

    assert report.outcome is RunOutcome.SUCCEEDED
    assert repo.updated == ["hash-A", "hash-B", "hash-C"]

    failed = _pipeline(
        _config(cutoff),
        source=FakeSource([make_item("Z")]),
        repository=FakeRepository(fail_create_on=1),
        observer=ExplodingObserver(),
    ).run()
    assert failed.outcome is RunOutcome.FAILED


def test_observer_sees_a_span_per_stage_and_the_fatal_error(cutoff, items):
    observer = RecordingObserver()
    repo = FakeRepository(fail_update_on=1)

    report = _pipeline(_config(cutoff), source=FakeSource(items), repository=repo, observer=observer).run()

    names = [name for name, _ in observer.spans]
    assert names == [
        "Run.markets.fetch",
        "Run.markets.dedupe",
        "Run.markets.compose",
        "Run.markets.persist",
        "Run.markets.publish",
        "Run.markets.update",
    ]
    assert observer.spans[-1][1] is report.error
    assert observer.captured == [report.error]
    assert "fetch_news returned 3 news" in observer.breadcrumbs


def test_null_observer_runs_silently(cutoff, items, caplog):
    caplog.set_level(logging.DEBUG, logger="pipeline.trace")
    publisher = FakePublisher()

    report = _pipeline(_config(cutoff), source=FakeSource(items), publisher=publisher, observer=NullObserver()).run()

    assert report.outcome is RunOutcome.SUCCEEDED
    assert report.published == 3
    assert len(publisher.texts) == 3
    assert [r for r in caplog.records if r.name == "pipeline.trace"] == []
