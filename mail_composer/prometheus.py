# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics exposed by the mail composer."""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class ComposerMetrics:
    """Wrapper around the Prometheus registry used by the composer."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create counters and gauges inside the provided registry."""
        self.registry = registry or CollectorRegistry()
        self.rendered = Counter("mc_rendered_total", "Total rendered messages", registry=self.registry)
        self.render_errors = Counter("mc_render_errors_total", "Total render failures", ["error"], registry=self.registry)
        self.sent = Counter("mc_sent_total", "Total delivered messages", ["transport"], registry=self.registry)
        self.send_errors = Counter("mc_send_errors_total", "Total delivery failures", ["transport"], registry=self.registry)
        self.in_use = Gauge("mc_pool_messages_in_use", "Messages currently acquired from the pool", registry=self.registry)

    def inc_rendered(self) -> None:
        """Increase the ``rendered`` counter after a successful render."""
        self.rendered.inc()

    def inc_render_error(self, error: str) -> None:
        """Increase the ``render_errors`` counter for the given error class name."""
        self.render_errors.labels(error=error or "unknown").inc()

    def inc_sent(self, transport: str) -> None:
        """Increase the ``sent`` counter for the given transport name."""
        self.sent.labels(transport=transport or "default").inc()

    def inc_send_error(self, transport: str) -> None:
        """Increase the ``send_errors`` counter for the given transport name."""
        self.send_errors.labels(transport=transport or "default").inc()

    def set_in_use(self, value: int) -> None:
        """Update the gauge tracking acquired messages."""
        self.in_use.set(value)

    def generate_latest(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus text format."""
        return generate_latest(self.registry)
