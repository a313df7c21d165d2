from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with capped exponential backoff."""

    max_attempts: int = 3
    base_delay_ms: int = 2000
    max_delay_ms: int = 60000

    def delay_ms(self, attempt: int) -> int:
        """Backoff before the retry that follows failed ``attempt`` (1-based)."""
        exponent = max(0, attempt - 1)
        return min(self.max_delay_ms, self.base_delay_ms * 2**exponent)

    def exhausted(self, attempt: int) -> bool:
        return attempt >= self.max_attempts


@dataclass(frozen=True)
class RetentionPolicy:
    """How long finished dispatch records are kept for diagnostics."""

    completed_count: int = 1000
    completed_age_sec: int = 3600
    failed_age_sec: int = 86400
