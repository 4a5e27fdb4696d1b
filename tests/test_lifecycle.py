import threading

import pytest

from codenotes.anchor.document import TextDocument
from codenotes.anchor.tracker import AnchorTracker
from codenotes.errors import (
    AlreadyDeletedError,
    FileMismatchError,
    InvalidRangeError,
    InvalidTagError,
    NotFoundError,
)
from codenotes.ledger import LedgerWriter, read_ledger_tail
from codenotes.lifecycle.author import StaticAuthorResolver
from codenotes.lifecycle.manager import LifecycleManager
from codenotes.models.annotation import (
    CreateAnnotationParams,
    HistoryAction,
    LifecycleState,
    LineRange,
    UpdateAnnotationParams,
)


def _create(manager, document, start=3, end=4, content="Explain the pricing", **kwargs):
    return manager.create(
        CreateAnnotationParams(
            file_path=document.file_path,
            line_range=LineRange(start=start, end=end),
            content=content,
            **kwargs,
        ),
        document,
    )


def test_create_populates_annotation(manager, sample_document, clock):
    note = _create(manager, sample_document, content="  Explain the pricing  ", tags=["todo", "perf"])

    assert note.id
    assert note.content == "Explain the pricing"
    assert note.author == "Ada"
    assert note.file_path == "src/app.py"
    assert note.created_at == note.updated_at == clock.now
    assert note.content_hash == AnchorTracker().hash(sample_document, LineRange(start=3, end=4))
    assert note.anchor_text == "def compute_total(items):\nreturn sum(item.price for item in items)"
    assert note.tags == frozenset({"TODO", "perf"})
    assert note.state is LifecycleState.ACTIVE
    assert [h.action for h in note.history] == [HistoryAction.CREATED]
    assert note.history[0].content == "Explain the pricing"


def test_create_with_explicit_author(manager, sample_document):
    note = _create(manager, sample_document, author="Grace")
    assert note.author == "Grace"
    assert note.history[0].author == "Grace"


@pytest.mark.parametrize(
    "start,end",
    [(-1, 2), (5, 4), (3, 10)],
)
def test_create_rejects_invalid_range(manager, store, sample_document, start, end):
    with pytest.raises(InvalidRangeError):
        _create(manager, sample_document, start=start, end=end)

    assert store.load_all("src/app.py") == []
    assert manager.get_for_file("src/app.py") == []


def test_create_rejects_invalid_tag_before_writing(manager, store, sample_document):
    with pytest.raises(InvalidTagError):
        _create(manager, sample_document, tags=["ok", "bad,tag"])

    assert store.load_all("src/app.py") == []


def test_create_rejects_params_for_another_file(manager, store, sample_document):
    params = CreateAnnotationParams(
        file_path="src/other.py",
        line_range=LineRange(start=3, end=4),
        content="Wrong file",
    )

    with pytest.raises(FileMismatchError):
        manager.create(params, sample_document)

    assert store.load_all("src/app.py") == []
    assert store.load_all("src/other.py") == []


def test_update_appends_history(manager, sample_document, clock):
    note = _create(manager, sample_document, tags=["perf"])
    clock.advance(minutes=5)

    updated = manager.update(
        UpdateAnnotationParams(id=note.id, content=" Uses Decimal now ", author="Grace"),
        sample_document,
    )

    assert updated.content == "Uses Decimal now"
    assert updated.author == "Grace"
    assert updated.created_at == note.created_at
    assert updated.updated_at == clock.now
    assert updated.tags == frozenset({"perf"})
    assert [h.action for h in updated.history] == [HistoryAction.CREATED, HistoryAction.EDITED]
    assert updated.history[0] == note.history[0]


def test_update_replaces_tags_when_given(manager, sample_document):
    note = _create(manager, sample_document, tags=["perf"])

    updated = manager.update(
        UpdateAnnotationParams(id=note.id, content="x", tags=["bug"]),
        sample_document,
    )

    assert updated.tags == frozenset({"BUG"})


def test_update_unknown_id_raises(manager, sample_document):
    with pytest.raises(NotFoundError):
        manager.update(UpdateAnnotationParams(id="missing", content="x"), sample_document)


def test_update_is_scoped_to_the_file(manager, sample_document):
    note = _create(manager, sample_document)
    other = TextDocument.from_lines("src/other.py", ["a"] * 10)

    with pytest.raises(NotFoundError):
        manager.update(UpdateAnnotationParams(id=note.id, content="x"), other)


def test_soft_delete(manager, sample_document, clock):
    note = _create(manager, sample_document)
    clock.advance(hours=1)

    deleted = manager.delete(note.id, "src/app.py")

    assert deleted.is_deleted
    assert deleted.updated_at == clock.now
    assert deleted.last_action is HistoryAction.DELETED
    assert deleted.history[-1].content == note.content
    assert manager.get_for_file("src/app.py") == []
    assert [a.id for a in manager.get_for_file("src/app.py", include_deleted=True)] == [note.id]
    assert len(manager.get_history(note.id, "src/app.py")) == 2


def test_deleted_annotation_cannot_be_mutated(manager, sample_document):
    note = _create(manager, sample_document)
    manager.delete(note.id, "src/app.py")

    with pytest.raises(AlreadyDeletedError):
        manager.delete(note.id, "src/app.py")
    with pytest.raises(AlreadyDeletedError):
        manager.update(UpdateAnnotationParams(id=note.id, content="again"), sample_document)


def test_get_history_unknown_raises(manager):
    with pytest.raises(NotFoundError):
        manager.get_history("nope", "src/app.py")


def test_position_queries(manager, sample_document):
    first = _create(manager, sample_document, start=0, end=2, content="header")
    second = _create(manager, sample_document, start=3, end=4, content="pricing")

    assert [a.id for a in manager.get_at_line("src/app.py", 3)] == [second.id]
    assert [a.id for a in manager.get_at_line("src/app.py", 2)] == [first.id]
    assert manager.get_at_line("src/app.py", 9) == []
    assert {a.id for a in manager.get_in_range("src/app.py", LineRange(start=2, end=3))} == {first.id, second.id}


def test_annotations_persist_across_managers(store, sample_document):
    first = LifecycleManager(store, author_resolver=StaticAuthorResolver("Ada"))
    note = _create(first, sample_document)

    second = LifecycleManager(store, author_resolver=StaticAuthorResolver("Ada"))
    loaded = second.get_by_id(note.id, "src/app.py")

    assert loaded == note


def test_refresh_reloads_from_store(manager, store, sample_document):
    note = _create(manager, sample_document)
    store.save(note.model_copy(update={"content": "changed elsewhere"}))

    assert manager.get_by_id(note.id, "src/app.py").content == note.content
    manager.refresh("src/app.py")
    assert manager.get_by_id(note.id, "src/app.py").content == "changed elsewhere"

    store.save(note.model_copy(update={"content": "again"}))
    manager.clear_cache()
    assert manager.get_by_id(note.id, "src/app.py").content == "again"


def test_reconcile_moves_annotation_without_history(manager, store, sample_document, clock):
    note = _create(manager, sample_document)
    clock.advance(minutes=1)

    shifted = TextDocument.from_lines("src/app.py", ["# new"] * 3 + list(sample_document.lines))
    moved = manager.reconcile_positions(shifted)

    assert len(moved) == 1
    relocated = moved[0]
    assert relocated.line_range == LineRange(start=6, end=7)
    assert relocated.content_hash == note.content_hash
    assert relocated.history == note.history
    assert relocated.updated_at == clock.now
    assert store.load_by_id(note.id).line_range == LineRange(start=6, end=7)
    assert manager.get_for_file("src/app.py")[0].line_range == LineRange(start=6, end=7)


def test_reconcile_fuzzy_updates_anchor(manager, sample_document):
    note = _create(manager, sample_document, start=4, end=4)

    lines = ["# moved"] + list(sample_document.lines)
    lines[5] = "    return sum(item.cost for item in items)"
    edited = TextDocument.from_lines("src/app.py", lines)

    [relocated] = manager.reconcile_positions(edited)

    assert relocated.line_range == LineRange(start=5, end=5)
    assert relocated.anchor_text == "return sum(item.cost for item in items)"
    assert relocated.content_hash != note.content_hash
    assert manager.tracker.validate(edited, relocated.line_range, relocated.content_hash)


def test_reconcile_leaves_unlocatable_annotation_untouched(manager, sample_document):
    note = _create(manager, sample_document)

    gutted = TextDocument.from_lines("src/app.py", ["line 0", "line 1"])
    assert manager.reconcile_positions(gutted) == []
    assert manager.get_by_id(note.id, "src/app.py") == note


def test_reconcile_skips_deleted(manager, sample_document):
    note = _create(manager, sample_document)
    manager.delete(note.id, "src/app.py")

    shifted = TextDocument.from_lines("src/app.py", ["# new"] + list(sample_document.lines))
    assert manager.reconcile_positions(shifted) == []


def test_reconcile_stops_when_cancelled(manager, sample_document):
    note = _create(manager, sample_document)
    cancel = threading.Event()
    cancel.set()

    shifted = TextDocument.from_lines("src/app.py", ["# new"] + list(sample_document.lines))
    assert manager.reconcile_positions(shifted, cancel=cancel) == []
    assert manager.get_by_id(note.id, "src/app.py").line_range == note.line_range


def test_listeners_receive_changes_and_failures_are_isolated(manager, sample_document):
    seen = []

    def broken(change):
        raise RuntimeError("listener exploded")

    manager.add_listener(broken)
    manager.add_listener(lambda change: seen.append((change.kind, change.annotation.id)))

    note = _create(manager, sample_document)
    manager.update(UpdateAnnotationParams(id=note.id, content="v2"), sample_document)
    shifted = TextDocument.from_lines("src/app.py", ["# new"] + list(sample_document.lines))
    manager.reconcile_positions(shifted)
    manager.delete(note.id, "src/app.py")

    assert [kind for kind, _ in seen] == ["created", "updated", "relocated", "deleted"]

    manager.remove_listener(broken)
    manager.remove_listener(broken)


def test_lifecycle_events_are_written_to_ledger(store, sample_document, tmp_path):
    ledger = LedgerWriter(tmp_path / "ledger.jsonl")
    manager = LifecycleManager(store, author_resolver=StaticAuthorResolver("Ada"), ledger=ledger)

    note = _create(manager, sample_document, tags=["todo"])
    manager.delete(note.id, "src/app.py")

    events = read_ledger_tail(tmp_path / "ledger.jsonl")
    assert [e.event_type for e in events] == ["ANNOTATION_CREATED", "ANNOTATION_DELETED"]
    assert events[0].annotation_id == note.id
    assert events[0].payload["tags"] == ["TODO"]
    assert events[0].payload["line_range"] == "L4-5"


def test_file_locks_are_released_after_use(manager, sample_document):
    note = _create(manager, sample_document)
    manager.update(UpdateAnnotationParams(id=note.id, content="Revised"), sample_document)
    manager.reconcile_positions(sample_document)
    manager.get_for_file("src/other.py")

    assert manager._locks == {}


def test_concurrent_creates_on_one_file(manager, store, sample_document):
    errors = []

    def worker(i):
        try:
            _create(manager, sample_document, start=i, end=i, content=f"note {i}")
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(store.load_all("src/app.py")) == 8
    assert len(manager.get_for_file("src/app.py")) == 8
    assert manager._locks == {}
