"""
Unit tests for the progress / cancellation token.
"""

import pytest

from layerslicer.core.progress import Progress


@pytest.mark.unit
class TestProgress:

    def test_poll_reports_on_interval(self):
        calls = []
        progress = Progress(lambda label, fraction: calls.append((label, fraction)), interval=10)
        progress.start("Work", total=100)
        for i in range(100):
            assert progress.poll(i)
        progress.finish()

        # start, ten interval reports, finish
        assert len(calls) == 12
        assert calls[0] == ("Work", 0.0)
        assert calls[2] == ("Work", pytest.approx(0.1))
        assert calls[-1] == ("Work", 1.0)

    def test_stop_ends_loop(self):
        progress = Progress(interval=5)
        progress.start("Work", total=1000)
        seen = 0
        for i in range(1000):
            if i == 42:
                progress.stop()
            if not progress.poll(i):
                break
            seen += 1
        assert seen == 42
        assert progress.cancelled

    def test_check_reads_stop_without_reporting(self):
        calls = []
        progress = Progress(lambda label, fraction: calls.append(fraction), interval=1)
        assert progress.check()
        progress.stop()
        assert not progress.check()
        assert calls == []

    def test_reset_clears_stop(self):
        progress = Progress()
        progress.stop()
        progress.reset()
        assert not progress.cancelled
        assert progress.poll(0)

    def test_update_without_total(self):
        calls = []
        progress = Progress(lambda label, fraction: calls.append(fraction))
        progress.start("Empty", total=0)
        progress.update(5)
        assert calls == [0.0, 0.0]

    def test_interval_at_least_one(self):
        assert Progress(interval=0).interval == 1
