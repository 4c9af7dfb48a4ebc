import time
import threading
from collections import defaultdict

from sanic.log import logger as logr


class Profiler:
    """
    Wall-clock time per label, eg. per event key while replaying the archive.

        with profiler('NounsToken:Transfer'):
            ...
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._stats = defaultdict(lambda: {"count": 0, "total": 0.0, "max": 0.0})

    class _Section:
        def __init__(self, profiler, label):
            self.profiler = profiler
            self.label = label
            self.start = None

        def __enter__(self):
            self.start = time.perf_counter()
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            duration = time.perf_counter() - self.start
            with self.profiler._lock:
                stat = self.profiler._stats[self.label]
                stat["count"] += 1
                stat["total"] += duration
                stat["max"] = max(stat["max"], duration)

    def __call__(self, label=None):
        return self._Section(self, label)

    def stats(self):
        with self._lock:
            return {label: dict(stat, avg=stat["total"] / stat["count"])
                    for label, stat in self._stats.items() if stat["count"]}

    def report(self):

        stats = self.stats()

        if not stats:
            logr.info("Profiler: no stats to report.")
            return

        for label, stat in sorted(stats.items(), key=lambda x: -x[1]["total"]):
            logr.info(f"Profiler: {label} count={stat['count']} total={stat['total']:.3f}s "
                      f"avg={stat['avg'] * 1000:.3f}ms max={stat['max'] * 1000:.3f}ms")
