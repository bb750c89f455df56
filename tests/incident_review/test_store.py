"""Tests for the candidate store and its per-candidate state machine."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from hypothesis import given, strategies as st

from review_stubs import make_candidate
from incident_review import tokens
from incident_review.models import Decision, PersistState
from incident_review.store import CandidateStore


def race(n, fn):
    """Run fn from n threads released at the same moment."""
    barrier = threading.Barrier(n)

    def run():
        barrier.wait()
        return fn()

    with ThreadPoolExecutor(max_workers=n) as pool:
        futures = [pool.submit(run) for _ in range(n)]
        return [f.result() for f in futures]


def approved_store(candidate_id="X"):
    store = CandidateStore()
    store.register(make_candidate(candidate_id))
    store.set_decision(candidate_id, Decision.APPROVED)
    return store


class TestRegister:
    """Tests for registering candidates."""

    def test_register_twice(self, store, candidate):
        assert store.register(candidate) is True
        assert store.register(candidate) is False
        assert len(store) == 1

    def test_ids_are_case_insensitive(self, store):
        assert store.register(make_candidate("Article-1"))
        assert not store.register(make_candidate("ARTICLE-1"))
        assert store.get("article-1") is not None

    def test_blank_id_is_rejected(self, store):
        assert not store.register(make_candidate(""))
        assert not store.register(make_candidate("   "))
        assert len(store) == 0

    def test_new_candidate_state(self, store, candidate):
        store.register(candidate)
        view = store.get(candidate.id)

        assert view.candidate == candidate
        assert view.decision == Decision.PENDING
        assert view.notified_message_id is None
        assert view.street_options == ()
        assert view.selected_street is None
        assert not view.awaiting_manual_street
        assert view.persist_state == PersistState.NOT_PERSISTED

    def test_token_failure_rolls_back(self, monkeypatch):
        monkeypatch.setattr(tokens, "_digest", lambda value, length: "0" * length)
        store = CandidateStore()

        assert store.register(make_candidate("first"))
        assert not store.register(make_candidate("second"))
        assert store.get("second") is None
        assert store.resolve_token("second") is None
        assert len(store) == 1

    def test_concurrent_register_same_id(self, store):
        results = race(8, lambda: store.register(make_candidate("shared")))
        assert results.count(True) == 1
        assert len(store) == 1

    @given(st.text(min_size=1).filter(lambda s: s.strip()))
    def test_token_round_trip(self, candidate_id):
        store = CandidateStore()
        store.register(make_candidate(candidate_id))

        token = store.resolve_token(candidate_id)
        assert token is not None
        assert store.resolve_candidate_id(token) == candidate_id

    def test_fabricated_token_resolves_to_none(self, store, candidate):
        store.register(candidate)
        assert store.resolve_candidate_id("0123456789abcdef") is None


class TestUnknownCandidate:
    """Every operation on an unknown id is a clean no-op."""

    def test_operations_return_false(self, store):
        assert store.get("missing") is None
        assert not store.mark_notified("missing", 1)
        assert not store.set_decision("missing", Decision.APPROVED)
        assert not store.set_street_options("missing", ["A"])
        assert not store.select_street("missing", "A")
        assert not store.begin_manual_street("missing")
        assert not store.select_manual_street("missing", "A")
        assert not store.begin_persisting("missing")
        assert not store.mark_persisted("missing")
        store.cancel_manual_street("missing")
        store.cancel_persisting("missing")


class TestNotifiedAndDecision:
    """Tests for mark_notified and set_decision."""

    def test_mark_notified_once(self, store, candidate):
        store.register(candidate)
        assert store.mark_notified(candidate.id, 42)
        assert not store.mark_notified(candidate.id, 43)
        assert store.get(candidate.id).notified_message_id == 42

    def test_decision_is_single_fire(self, store, candidate):
        store.register(candidate)
        assert store.set_decision(candidate.id, Decision.APPROVED)
        assert not store.set_decision(candidate.id, Decision.APPROVED)
        assert not store.set_decision(candidate.id, Decision.REJECTED)
        assert store.get(candidate.id).decision == Decision.APPROVED

    def test_pending_is_not_a_decision(self, store, candidate):
        store.register(candidate)
        assert not store.set_decision(candidate.id, Decision.PENDING)

    def test_concurrent_decisions(self, store, candidate):
        store.register(candidate)
        decisions = [Decision.APPROVED, Decision.REJECTED] * 8
        index = iter(range(len(decisions)))
        lock = threading.Lock()

        def decide():
            with lock:
                i = next(index)
            return store.set_decision(candidate.id, decisions[i])

        results = race(len(decisions), decide)
        assert results.count(True) == 1
        assert store.get(candidate.id).decision != Decision.PENDING


class TestStreetOptions:
    """Tests for set_street_options."""

    def test_blank_options_dropped(self, store, candidate):
        store.register(candidate)
        assert store.set_street_options(candidate.id, ["A", " ", "", "B"])
        assert store.get(candidate.id).street_options == ("A", "B")

    def test_empty_options_rejected(self, store, candidate):
        store.register(candidate)
        assert not store.set_street_options(candidate.id, [])
        assert not store.set_street_options(candidate.id, ["  "])

    def test_options_set_once(self, store, candidate):
        store.register(candidate)
        assert store.set_street_options(candidate.id, ["A"])
        assert not store.set_street_options(candidate.id, ["B"])
        assert store.get(candidate.id).street_options == ("A",)


class TestSelectStreet:
    """Tests for select_street."""

    def test_requires_approval(self, store, candidate):
        store.register(candidate)
        assert not store.select_street(candidate.id, "Strada Test")

    def test_rejected_candidate_cannot_select(self, store, candidate):
        store.register(candidate)
        store.set_decision(candidate.id, Decision.REJECTED)
        assert not store.select_street(candidate.id, "Strada Test")

    def test_select_once(self):
        store = approved_store()
        assert store.select_street("X", "Strada Test")
        assert not store.select_street("X", "Strada Alta")
        assert store.get("X").selected_street == "Strada Test"

    def test_blank_street_rejected(self):
        store = approved_store()
        assert not store.select_street("X", "   ")
        assert store.get("X").selected_street is None

    def test_concurrent_select(self):
        store = approved_store()
        results = race(8, lambda: store.select_street("X", "Strada Test"))
        assert results.count(True) == 1

    def test_select_clears_manual_request(self):
        store = approved_store()
        assert store.begin_manual_street("X", "555")
        assert store.select_street("X", "Strada Test")

        view = store.get("X")
        assert not view.awaiting_manual_street
        assert store.manual_street_request("555") is None


class TestManualStreet:
    """Tests for the manual street entry transitions."""

    def test_begin_requires_approval(self, store, candidate):
        store.register(candidate)
        assert not store.begin_manual_street(candidate.id)

    def test_begin_once(self):
        store = approved_store()
        assert store.begin_manual_street("X")
        assert not store.begin_manual_street("X")
        assert store.get("X").awaiting_manual_street

    def test_begin_after_street_selected_fails(self):
        store = approved_store()
        store.select_street("X", "Strada Test")
        assert not store.begin_manual_street("X")

    def test_select_manual_requires_awaiting(self):
        store = approved_store()
        assert not store.select_manual_street("X", "Manual Street")

    def test_select_manual(self):
        store = approved_store()
        store.begin_manual_street("X")
        assert store.select_manual_street("X", "Manual Street")

        view = store.get("X")
        assert view.selected_street == "Manual Street"
        assert not view.awaiting_manual_street

    def test_select_manual_blank_keeps_waiting(self):
        store = approved_store()
        store.begin_manual_street("X")
        assert not store.select_manual_street("X", "  ")
        assert store.get("X").awaiting_manual_street

    def test_cancel(self):
        store = approved_store()
        store.begin_manual_street("X", "555")
        store.cancel_manual_street("X")

        assert not store.get("X").awaiting_manual_street
        assert store.manual_street_request("555") is None
        assert store.begin_manual_street("X")

    def test_request_lookup_by_chat(self):
        store = approved_store()
        store.begin_manual_street("X", 555)
        assert store.manual_street_request("555") == "X"
        assert store.manual_street_request("777") is None

    def test_clear_request_only_for_matching_candidate(self):
        store = approved_store()
        store.begin_manual_street("X", "555")

        store.clear_manual_street_request("555", "other")
        assert store.manual_street_request("555") == "X"

        store.clear_manual_street_request("555", "x")
        assert store.manual_street_request("555") is None

    def test_one_request_per_chat(self):
        """A second candidate cannot take over a chat that still owes a street."""
        store = approved_store()
        store.register(make_candidate("Y"))
        store.set_decision("Y", Decision.APPROVED)

        assert store.begin_manual_street("X", "555")
        assert not store.begin_manual_street("Y", "555")
        assert not store.get("Y").awaiting_manual_street
        assert store.manual_street_request("555") == "X"

        # another chat is unaffected
        assert store.begin_manual_street("Y", "777")
        store.cancel_manual_street("Y")

        assert store.select_manual_street("X", "Street for X")
        store.clear_manual_street_request("555", "X")
        assert store.begin_manual_street("Y", "555")
        assert store.manual_street_request("555") == "Y"

    def test_stale_request_is_replaced(self):
        store = approved_store()
        store.register(make_candidate("Y"))
        store.set_decision("Y", Decision.APPROVED)

        assert store.begin_manual_street("X", "555")
        # X no longer waits, even though the chat entry was never cleared
        assert store.select_manual_street("X", "Street for X")

        assert store.begin_manual_street("Y", "555")
        assert store.manual_street_request("555") == "Y"

    def test_concurrent_requests_in_one_chat(self):
        store = CandidateStore()
        ids = [f"C{i}" for i in range(8)]
        for candidate_id in ids:
            store.register(make_candidate(candidate_id))
            store.set_decision(candidate_id, Decision.APPROVED)

        barrier = threading.Barrier(len(ids))

        def begin(candidate_id):
            barrier.wait()
            return store.begin_manual_street(candidate_id, "555")

        with ThreadPoolExecutor(max_workers=len(ids)) as pool:
            results = list(pool.map(begin, ids))

        assert results.count(True) == 1
        winner = ids[results.index(True)]
        assert store.manual_street_request("555") == winner
        assert [v.candidate.id for v in store.snapshot() if v.awaiting_manual_street] == [winner]


class TestPersisting:
    """Tests for the persistence gate."""

    def test_requires_approval(self, store, candidate):
        store.register(candidate)
        assert not store.begin_persisting(candidate.id)

    def test_gate_is_exclusive(self):
        store = approved_store()
        assert store.begin_persisting("X")
        assert not store.begin_persisting("X")
        assert store.get("X").persist_state == PersistState.PERSISTING

    def test_cancel_allows_retry(self):
        store = approved_store()
        assert store.begin_persisting("X")
        store.cancel_persisting("X")

        assert store.get("X").persist_state == PersistState.NOT_PERSISTED
        assert store.begin_persisting("X")

    def test_persisted_is_terminal(self):
        store = approved_store()
        store.begin_persisting("X")
        assert store.mark_persisted("X")
        assert not store.mark_persisted("X")

        store.cancel_persisting("X")
        assert store.get("X").is_persisted
        assert not store.begin_persisting("X")

    @pytest.mark.parametrize("n_threads", [2, 8, 32])
    def test_concurrent_begin(self, n_threads):
        store = approved_store()
        results = race(n_threads, lambda: store.begin_persisting("X"))
        assert results.count(True) == 1


class TestSnapshot:
    """Tests for snapshot and ready_to_persist."""

    def test_snapshot_lists_every_candidate(self, store):
        for i in range(3):
            store.register(make_candidate(f"id-{i}"))
        ids = sorted(view.candidate.id for view in store.snapshot())
        assert ids == ["id-0", "id-1", "id-2"]

    def test_ready_to_persist(self):
        store = approved_store()
        assert not store.get("X").ready_to_persist

        store.select_street("X", "Strada Test")
        assert store.get("X").ready_to_persist

        store.begin_persisting("X")
        assert not store.get("X").ready_to_persist

    def test_snapshot_is_a_copy(self):
        store = approved_store()
        before = store.snapshot()
        store.select_street("X", "Strada Test")
        assert before[0].selected_street is None
