"""Tests for cancel handles and the schedulers."""

import asyncio

from core.clock import CancelHandle, CompositeHandle, LoopScheduler, VirtualScheduler


class TestCancelHandle:
    def test_cancel_runs_callback_once(self):
        calls = []
        handle = CancelHandle(lambda: calls.append(1))

        handle.cancel()
        handle.cancel()
        handle()

        assert calls == [1]
        assert handle.cancelled

    def test_composite_cancels_children(self):
        a, b = CancelHandle(), CancelHandle()
        group = CompositeHandle([a])
        group.add(b)

        group.cancel()

        assert a.cancelled and b.cancelled
        assert len(group) == 0

    def test_add_after_cancel_cancels_immediately(self):
        group = CompositeHandle()
        group.cancel()
        late = group.add(CancelHandle())
        assert late.cancelled

    def test_nested_composites(self):
        inner = CompositeHandle([CancelHandle()])
        outer = CompositeHandle([inner])
        outer.cancel()
        assert inner.cancelled


class TestVirtualScheduler:
    def test_runs_callbacks_in_time_order(self, scheduler):
        calls = []
        scheduler.call_later(300, lambda: calls.append("c"))
        scheduler.call_later(100, lambda: calls.append("a"))
        scheduler.call_later(200, lambda: calls.append("b"))

        scheduler.advance(250)
        assert calls == ["a", "b"]
        assert scheduler.now_ms() == 250

        scheduler.run_until_idle()
        assert calls == ["a", "b", "c"]
        assert scheduler.now_ms() == 300

    def test_same_time_runs_in_schedule_order(self, scheduler):
        calls = []
        for name in "xyz":
            scheduler.call_later(100, lambda name=name: calls.append(name))
        scheduler.run_until_idle()
        assert calls == ["x", "y", "z"]

    def test_cancelled_callback_never_runs(self, scheduler):
        calls = []
        handle = scheduler.call_later(100, lambda: calls.append(1))
        handle.cancel()

        scheduler.run_until_idle()

        assert calls == []
        assert scheduler.pending == 0

    def test_cancel_after_fire_is_noop(self, scheduler):
        calls = []
        handle = scheduler.call_later(100, lambda: calls.append(1))
        scheduler.run_until_idle()

        handle.cancel()
        handle.cancel()

        assert calls == [1]

    def test_callbacks_scheduled_while_advancing(self, scheduler):
        calls = []

        def first():
            calls.append("first")
            scheduler.call_later(50, lambda: calls.append("second"))

        scheduler.call_later(100, first)
        scheduler.advance(200)

        assert calls == ["first", "second"]

    def test_failing_callback_is_contained(self, scheduler):
        calls = []

        def broken():
            raise ValueError("boom")

        scheduler.call_later(10, broken)
        scheduler.call_later(20, lambda: calls.append("after"))
        scheduler.run_until_idle()

        assert calls == ["after"]

    def test_call_at_absolute_time(self):
        scheduler = VirtualScheduler(start_ms=1000)
        calls = []
        scheduler.call_at(1500, lambda: calls.append(scheduler.now_ms()))
        scheduler.run_until_idle()
        assert calls == [1500]

    def test_run_until_idle_limit(self, scheduler):
        calls = []
        scheduler.call_later(100, lambda: calls.append(1))
        scheduler.call_later(5000, lambda: calls.append(2))

        scheduler.run_until_idle(limit_ms=1000)

        assert calls == [1]
        assert scheduler.next_due_ms() == 5000


class TestLoopScheduler:
    def test_runs_on_asyncio_loop(self):
        calls = []

        async def run():
            scheduler = LoopScheduler()
            scheduler.call_later(10, lambda: calls.append("late"))
            handle = scheduler.call_later(5, lambda: calls.append("cancelled"))
            handle.cancel()
            scheduler.call_later(0, lambda: calls.append("soon"))
            await asyncio.sleep(0.05)

        asyncio.run(run())

        assert calls == ["soon", "late"]
