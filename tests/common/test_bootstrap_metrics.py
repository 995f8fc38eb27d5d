# tests/common/test_bootstrap_metrics.py
# -*- coding: utf-8 -*-
"""
Tests for BootstrapMetrics.
"""

from prometheus_client import CollectorRegistry

from devstack_common.metrics import BootstrapMetrics


class TestBootstrapMetrics:
    def test_runs_do_not_share_a_registry(self):
        """Two collectors in one process must not clash over metric names."""
        first = BootstrapMetrics()
        second = BootstrapMetrics()

        assert first.registry is not second.registry

    def test_step_and_chain_samples(self):
        registry = CollectorRegistry()
        metrics = BootstrapMetrics(registry=registry)

        metrics.record_step("gitlab", "create_sample_project", "Success", 0.25)
        metrics.record_step("gitlab", "commit_ci_pipeline", "Failed", 0.1)
        metrics.record_chain_status("gitlab", "CompletedWithOptionalFailures")

        assert registry.get_sample_value(
            "devstack_steps_total", {"service": "gitlab", "status": "Success"}
        ) == 1
        assert registry.get_sample_value(
            "devstack_step_duration_seconds_count",
            {"service": "gitlab", "step": "commit_ci_pipeline"},
        ) == 1
        assert registry.get_sample_value(
            "devstack_chain_status",
            {"service": "gitlab", "status": "CompletedWithOptionalFailures"},
        ) == 1

    def test_health_samples(self):
        registry = CollectorRegistry()
        metrics = BootstrapMetrics(registry=registry)

        metrics.record_health_probe("vault", False)
        metrics.record_health_probe("vault", True)
        metrics.record_health_wait("vault", 3.0)

        assert registry.get_sample_value(
            "devstack_health_probes_total", {"service": "vault", "result": "unhealthy"}
        ) == 1
        assert registry.get_sample_value(
            "devstack_health_wait_seconds_sum", {"service": "vault"}
        ) == 3.0

    def test_write_to_file(self, tmp_path):
        metrics = BootstrapMetrics()
        metrics.set_run_info(dry_run=True, run_directory="/tmp/run")

        target = metrics.write_to_file(tmp_path / "metrics" / "run.prom")

        text = target.read_text(encoding="utf-8")
        assert 'devstack_run_info{dry_run="true",run_directory="/tmp/run"} 1.0' in text
