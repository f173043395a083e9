"""Prometheus counters for code issuance and verification.

Works as a no-op when ``prometheus_client`` is not installed
(``pip install otp-engine[metrics]`` to enable).
"""

from __future__ import annotations

import logging
from typing import Any

_logger = logging.getLogger(__name__)


class _OtpMetricsRegistry:
    """Lazily initializes Prometheus metrics on first use."""

    def __init__(self) -> None:
        self._issued: Any = None
        self._verifications: Any = None
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        try:
            from prometheus_client import Counter

            self._issued = Counter(
                "otp_codes_issued_total",
                "One-time codes and TOTP secrets issued",
                ["channel"],
            )
            self._verifications = Counter(
                "otp_verifications_total",
                "Verification outcomes",
                ["channel", "result"],
            )
        except ImportError:
            _logger.debug("prometheus_client not available, metrics disabled")

        self._initialized = True

    @property
    def issued(self) -> Any:
        self._ensure_initialized()
        return self._issued

    @property
    def verifications(self) -> Any:
        self._ensure_initialized()
        return self._verifications


_registry = _OtpMetricsRegistry()


def record_issued(channel: str) -> None:
    """Count an issued code (``email``/``sms``) or TOTP secret (``totp``)."""
    if _registry.issued:
        try:
            _registry.issued.labels(channel=channel).inc()
        except Exception:
            _logger.debug("Failed to record issued counter")


def record_verification(channel: str, result: str) -> None:
    """Count a verification outcome.

    Args:
        channel: ``email``, ``sms`` or ``totp``.
        result: ``success`` or a failure kind value such as ``invalid_code``.
    """
    if _registry.verifications:
        try:
            _registry.verifications.labels(channel=channel, result=result).inc()
        except Exception:
            _logger.debug("Failed to record verification counter")


__all__: list[str] = ["record_issued", "record_verification"]
