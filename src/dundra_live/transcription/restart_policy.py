#!/usr/bin/env python3
"""Restart policy for recognizer stream resilience.

Long sessions run for hours and upstream speech streams drop regularly, so the
stream adapter keeps reopening them. This policy decides how long to wait
before each attempt and when to give up.
"""

from dataclasses import dataclass
from enum import Enum


class RestartState(Enum):
    """States of the restart policy."""

    HEALTHY = "healthy"  # Stream running, no pending failures
    RECOVERING = "recovering"  # Failures seen, still retrying
    EXHAUSTED = "exhausted"  # Attempt ceiling reached


@dataclass
class RestartPolicyConfig:
    """Configuration for restart behavior."""

    base_delay_s: float = 1.0  # First wait, matches the fixed 1s of older clients
    max_delay_s: float = 30.0  # Backoff ceiling
    max_attempts: int = 10  # Consecutive failures before escalation; 0 = unlimited

    @classmethod
    def from_config(cls, config) -> "RestartPolicyConfig":
        return cls(
            base_delay_s=float(config.get("speech.restart.base_delay_s", 1.0)),
            max_delay_s=float(config.get("speech.restart.max_delay_s", 30.0)),
            max_attempts=int(config.get("speech.restart.max_attempts", 10)),
        )


class RestartPolicy:
    """Exponential backoff with an attempt ceiling."""

    def __init__(self, config_obj: RestartPolicyConfig | None = None):
        """Initialize restart policy.

        Args:
            config_obj: Policy configuration (uses defaults if not provided)

        """
        self.config = config_obj or RestartPolicyConfig()
        self.state = RestartState.HEALTHY
        self.attempts = 0
        self.total_restarts = 0

    def record_failure(self) -> float | None:
        """Record a stream failure.

        Returns:
            Seconds to wait before the next attempt, or None when exhausted

        """
        if self.config.max_attempts and self.attempts >= self.config.max_attempts:
            self.state = RestartState.EXHAUSTED
            return None

        delay = min(self.config.base_delay_s * (2**self.attempts), self.config.max_delay_s)
        self.attempts += 1
        self.total_restarts += 1
        self.state = RestartState.RECOVERING
        return delay

    def record_success(self) -> None:
        """Record that the stream produced data again."""
        self.attempts = 0
        self.state = RestartState.HEALTHY

    def reset(self) -> None:
        self.attempts = 0
        self.total_restarts = 0
        self.state = RestartState.HEALTHY

    def get_status(self) -> dict:
        """Get current policy status for monitoring."""
        return {
            "state": self.state.value,
            "attempts": self.attempts,
            "total_restarts": self.total_restarts,
            "max_attempts": self.config.max_attempts,
        }
