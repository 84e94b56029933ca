"""
Usage tracking for outbound API calls.

A ``UsageTracker`` is created by whoever runs the pipeline and passed down
to every client; nothing in the pipeline keeps global counters.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class ProviderUsage:
    """Counters for one external service."""

    calls: int = 0
    failures: int = 0
    total_latency_ms: float = 0.0

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.calls if self.calls else 0.0


@dataclass
class UsageTracker:
    """Per-run (or per-caller) record of outbound calls."""

    providers: Dict[str, ProviderUsage] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, provider: str, latency_ms: float, success: bool = True) -> None:
        with self._lock:
            usage = self.providers.setdefault(provider, ProviderUsage())
            usage.calls += 1
            usage.total_latency_ms += latency_ms
            if not success:
                usage.failures += 1

    def calls(self, provider: str) -> int:
        usage = self.providers.get(provider)
        return usage.calls if usage else 0

    @property
    def total_calls(self) -> int:
        return sum(u.calls for u in self.providers.values())

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        """Plain-dict copy for reporting."""
        with self._lock:
            return {
                name: {
                    "calls": u.calls,
                    "failures": u.failures,
                    "avg_latency_ms": round(u.avg_latency_ms, 1),
                }
                for name, u in self.providers.items()
            }
