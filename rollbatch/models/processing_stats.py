"""
Recognition accounting for a run.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class RecognitionStats:
    """
    Pages, calls, retries and token usage of one recognizer.

    Shared by all page workers of a run, so every mutation takes the lock.
    """
    provider: str = ""
    model: str = ""
    pages: int = 0
    failed_pages: int = 0
    calls: int = 0
    retries: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: Optional[float] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_call(self, input_tokens: int = 0, output_tokens: int = 0, cost_usd: Optional[float] = None) -> None:
        with self._lock:
            self.calls += 1
            self.input_tokens += input_tokens
            self.output_tokens += output_tokens
            if cost_usd is not None:
                self.cost_usd = (self.cost_usd or 0.0) + cost_usd

    def record_retry(self) -> None:
        with self._lock:
            self.retries += 1

    def record_page(self, success: bool) -> None:
        with self._lock:
            self.pages += 1
            if not success:
                self.failed_pages += 1

    def summary(self) -> str:
        """One-line summary for the end-of-run report."""
        parts = [f"{self.pages} pages", f"{self.failed_pages} failed"]
        if self.calls:
            parts.append(f"{self.calls} calls ({self.retries} retries)")
            parts.append(f"{self.input_tokens}+{self.output_tokens} tokens")
        if self.cost_usd is not None:
            parts.append(f"${self.cost_usd:.4f}")
        label = f"{self.provider}/{self.model}" if self.model else self.provider
        return f"{label}: " + ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "provider": self.provider,
                "model": self.model,
                "pages": self.pages,
                "failed_pages": self.failed_pages,
                "calls": self.calls,
                "retries": self.retries,
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
                "cost_usd": self.cost_usd,
            }
