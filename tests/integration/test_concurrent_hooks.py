"""
Multi-process tests for the shared .superego state.

Each worker is a separate process, as hook invocations are in practice.
"""

import multiprocessing
from pathlib import Path

import pytest
from pydantic import ValidationError

from superego.decision_journal import DecisionJournal
from superego.feedback_queue import FeedbackQueue
from superego.paths import SuperegoPaths
from superego.session_schema import DecisionKind, DecisionRecord, Phase, SessionState
from superego.session_store import SessionStore

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        "fork" not in multiprocessing.get_all_start_methods(),
        reason="requires fork start method",
    ),
]

ctx = multiprocessing.get_context("fork") if "fork" in multiprocessing.get_all_start_methods() else None


def increment_worker(root: str, iterations: int, results) -> None:
    store = SessionStore(SuperegoPaths(Path(root)), lock_timeout=5.0, max_attempts=50)
    committed = 0
    for _ in range(iterations):
        update = store.update("shared", lambda s: s.model_copy(update={"evaluations": s.evaluations + 1}))
        if update.committed:
            committed += 1
    results.put(committed)


def cas_worker(root: str, phase: str, barrier, results) -> None:
    store = SessionStore(SuperegoPaths(Path(root)), lock_timeout=5.0)
    prior = store.read("shared")
    barrier.wait()
    won = store.compare_and_set("shared", prior, prior.transition_to(Phase(phase)))
    if not won:
        # Retry against the winner's state
        update = store.update("shared", lambda s: s.model_copy(update={"blocks": s.blocks + 1}))
        won_on_retry = update.committed
    else:
        won_on_retry = False
    results.put((won, won_on_retry))


def append_worker(root: str, index: int) -> None:
    journal = DecisionJournal(SuperegoPaths(Path(root)))
    journal.append(
        "shared",
        DecisionRecord(session_id="shared", kind=DecisionKind.ALLOW, context=f"worker {index}"),
    )


def take_worker(root: str, barrier, results) -> None:
    queue = FeedbackQueue(SuperegoPaths(Path(root)))
    barrier.wait()
    item = queue.peek_or_take("shared")
    results.put(item.text if item else None)


def write_worker(root: str, iterations: int) -> None:
    store = SessionStore(SuperegoPaths(Path(root)), lock_timeout=5.0, max_attempts=50)
    phases = [Phase.EXPLORING, Phase.DISCUSSING, Phase.READY]
    for i in range(iterations):
        store.update("shared", lambda s, i=i: s.transition_to(phases[i % 3], scope="x" * (i % 50)))


def read_worker(root: str, iterations: int, results) -> None:
    state_file = SuperegoPaths(Path(root)).state_file("shared")
    torn = 0
    for _ in range(iterations):
        try:
            SessionState.model_validate_json(state_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            continue
        except ValidationError:
            torn += 1
    results.put(torn)


def run_all(processes):
    for p in processes:
        p.start()
    for p in processes:
        p.join(timeout=60)
        assert p.exitcode == 0


class TestConcurrentState:
    def test_no_lost_updates(self, paths):
        results = ctx.Queue()
        workers = [ctx.Process(target=increment_worker, args=(str(paths.root), 20, results)) for _ in range(2)]

        run_all(workers)

        committed = results.get(timeout=5) + results.get(timeout=5)
        assert committed > 0
        assert SessionStore(paths).read("shared").evaluations == committed

    def test_readers_never_see_partial_record(self, paths):
        results = ctx.Queue()
        writer = ctx.Process(target=write_worker, args=(str(paths.root), 100))
        readers = [ctx.Process(target=read_worker, args=(str(paths.root), 300, results)) for _ in range(2)]

        run_all([writer, *readers])

        assert results.get(timeout=5) == 0
        assert results.get(timeout=5) == 0

    def test_same_prior_exactly_one_wins(self, paths):
        barrier = ctx.Barrier(2)
        results = ctx.Queue()
        workers = [
            ctx.Process(target=cas_worker, args=(str(paths.root), phase, barrier, results))
            for phase in ("discussing", "ready")
        ]

        run_all(workers)

        outcomes = [results.get(timeout=5) for _ in range(2)]
        assert sorted(won for won, _ in outcomes) == [False, True]
        assert [retried for won, retried in outcomes if not won] == [True]

        stored = SessionStore(paths).read("shared")
        assert stored.revision == 2
        assert stored.blocks == 1


class TestConcurrentJournal:
    def test_sixteen_concurrent_appends(self, paths):
        workers = [ctx.Process(target=append_worker, args=(str(paths.root), i)) for i in range(16)]

        run_all(workers)

        journal = DecisionJournal(paths)
        session = journal.read_all("shared")
        aggregate = journal.read_all(None)
        assert len(session) == 16
        assert len(aggregate) == 16
        assert {r.context for r in session} == {f"worker {i}" for i in range(16)}


class TestConcurrentFeedback:
    def test_single_item_taken_once(self, paths):
        FeedbackQueue(paths).write("shared", "only once")
        barrier = ctx.Barrier(8)
        results = ctx.Queue()
        workers = [ctx.Process(target=take_worker, args=(str(paths.root), barrier, results)) for _ in range(8)]

        run_all(workers)

        taken = [results.get(timeout=5) for _ in range(8)]
        assert taken.count("only once") == 1
        assert taken.count(None) == 7
