"""
Unit tests for concurrent use of the store and the dispatcher.
"""

from concurrent.futures import ThreadPoolExecutor
import threading

from moa import RESPOND, Dispatcher, RequestDescriptor, Scope, StateStore, stage
from moa.state import NOT_FOUND


THREADS = 8
PER_THREAD = 200


class TestStoreConcurrency:
    """Tests for atomic updates under contention."""

    def test_global_counter(self, store: StateStore):
        """Test that concurrent global updates never lose a write."""
        def work():
            for _ in range(PER_THREAD):
                store.update(Scope.GLOBAL, "hits", lambda n: n + 1, default=0)

        threads = [threading.Thread(target=work) for _ in range(THREADS)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get(Scope.GLOBAL, "hits") == THREADS * PER_THREAD

    def test_session_counters(self, store: StateStore):
        """Test per-session counters under contention stay separate."""
        def work(session_id):
            for _ in range(PER_THREAD):
                store.update(Scope.SESSION, "hits", lambda n: n + 1, default=0, session_id=session_id)

        sessions = [f"s{i % 3}" for i in range(THREADS)]
        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            list(pool.map(work, sessions))

        for sid in set(sessions):
            assert store.get(Scope.SESSION, "hits", session_id=sid) == sessions.count(sid) * PER_THREAD


class TestDispatcherConcurrency:
    """Tests for routing from many threads at once."""

    def test_request_scope_never_leaks(self, dispatcher: Dispatcher):
        """Test each run sees only its own request values."""
        leaks = []

        @stage(terminator=True)
        def own_value(request, response, state):
            if state.get("marker", scope=Scope.REQUEST) is not NOT_FOUND:
                leaks.append(request.request_id)
            state.set(Scope.REQUEST, "marker", request.request_id)
            response.text(state.get("marker"))
            state.update(Scope.SESSION, "count", lambda n: n + 1, default=0)
            return RESPOND

        dispatcher.get("/test", own_value)

        def send(i):
            request = RequestDescriptor.build("GET", "/test", session_id=f"s{i % 4}")
            return request.request_id, dispatcher.route(request).text_body

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            results = list(pool.map(send, range(THREADS * 25)))

        assert leaks == []
        assert all(request_id == body for request_id, body in results)
        total = sum(
            dispatcher.store.get(Scope.SESSION, "count", session_id=f"s{i}") for i in range(4)
        )
        assert total == THREADS * 25
