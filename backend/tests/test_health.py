from __future__ import annotations

import asyncio
from datetime import timedelta

from salespro.health import AgentStatus, SystemHealthMonitor, classify
from salespro.host import NullHost


def test_no_recent_errors_means_idle(diagnostics, store) -> None:
    diagnostics.warn("only a warning")
    monitor = SystemHealthMonitor(diagnostics, store)

    report = monitor.check()

    assert report.status is AgentStatus.IDLE
    assert monitor.latest is report


def test_storage_errors_clear_disposable_caches(diagnostics, store, telemetry_events) -> None:
    store.set("materials", [{"id": "m1"}])
    store.set("streams", [{"id": "s1"}])
    store.set("progress", {"name": "kept"})
    diagnostics.error("Critical storage failure even after cleaning")
    host = NullHost()
    monitor = SystemHealthMonitor(diagnostics, store, host=host)

    report = monitor.check()

    assert report.status is AgentStatus.REPAIRING
    assert report.action == "clear_heavy_caches"
    assert store.get("materials", None) is None
    assert store.get("streams", None) is None
    assert store.get("progress", None) == {"name": "kept"}
    assert host.haptics == ["warning"]
    assert telemetry_events[-1].name == "health_remediation"


def test_network_errors_reset_remote_connection(diagnostics, store) -> None:
    resets: list[str] = []
    diagnostics.error("Backend: fetch failed (remote network error)")
    monitor = SystemHealthMonitor(diagnostics, store, reset_remote=lambda: resets.append("reset"))

    report = monitor.check()

    assert report.action == "reset_remote_connection"
    assert resets == ["reset"]


def test_without_auto_fix_the_monitor_only_alerts(diagnostics, store) -> None:
    store.set("materials", [1])
    diagnostics.error("Storage Error for key: materials")
    host = NullHost()
    monitor = SystemHealthMonitor(diagnostics, store, auto_fix=False, host=host)

    report = monitor.check()

    assert report.status is AgentStatus.ALERT
    assert report.error_count == 1
    assert store.get("materials", None) == [1]
    assert host.haptics == []


def test_errors_outside_window_are_ignored(diagnostics, store) -> None:
    event = diagnostics.error("old failure")
    monitor = SystemHealthMonitor(diagnostics, store, error_window=30)

    report = monitor.check(now=event.timestamp + timedelta(seconds=31))

    assert report.status is AgentStatus.IDLE


def test_classify_falls_back_to_optimize(diagnostics) -> None:
    assert classify([diagnostics.error("Unexpected render crash")]) == "optimize"


def test_failing_remediation_does_not_escape(diagnostics, store) -> None:
    def _broken() -> None:
        raise RuntimeError("cannot reset")

    diagnostics.error("Network unreachable")
    monitor = SystemHealthMonitor(diagnostics, store, reset_remote=_broken)

    assert monitor.check().status is AgentStatus.REPAIRING


def test_disabled_monitor_does_not_start(diagnostics, store) -> None:
    monitor = SystemHealthMonitor(diagnostics, store, enabled=False)

    async def scenario():
        return monitor.start()

    assert asyncio.run(scenario()) is None


def test_background_loop_runs_checks_until_stopped(diagnostics, store) -> None:
    diagnostics.error("Network unreachable")
    monitor = SystemHealthMonitor(diagnostics, store, interval=0.01)

    async def scenario():
        monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

    asyncio.run(scenario())

    assert monitor.latest.status is AgentStatus.REPAIRING
