import threading

import pytest

from shadow_prompt.workers import BackgroundExecutor


def test_submit_returns_results_and_exceptions() -> None:
    executor = BackgroundExecutor(2, thread_name_prefix="test-worker")

    ok = executor.submit(lambda a, b: a + b, 2, 3)
    failed = executor.submit(lambda: 1 / 0)

    assert ok.result(timeout=5) == 5
    with pytest.raises(ZeroDivisionError):
        failed.result(timeout=5)
    executor.shutdown()


def test_workers_are_daemon_threads() -> None:
    release = threading.Event()
    executor = BackgroundExecutor(1, thread_name_prefix="daemon-check")

    future = executor.submit(release.wait, 5)
    workers = [thread for thread in threading.enumerate() if thread.name.startswith("daemon-check")]

    assert workers
    assert all(thread.daemon for thread in workers)
    release.set()
    assert future.result(timeout=5) is True
    executor.shutdown()


def test_shutdown_cancels_queued_work_without_waiting() -> None:
    started = threading.Event()
    release = threading.Event()

    def _block() -> bool:
        started.set()
        return release.wait(5)

    executor = BackgroundExecutor(1)
    running = executor.submit(_block)
    assert started.wait(5)
    queued = executor.submit(lambda: "never")

    executor.shutdown(wait=False, cancel_futures=True)

    assert queued.cancelled()
    with pytest.raises(RuntimeError):
        executor.submit(lambda: None)
    release.set()
    assert running.result(timeout=5) is True
