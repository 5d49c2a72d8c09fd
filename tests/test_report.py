"""Tests for the access information report."""

import json

from mondeploy.report import EXPORTER_ENDPOINTS, AccessInfoReporter, ServiceEndpoint
from mondeploy.types import Severity


def _listing(*gpu_hosts):
    return json.dumps({
        "_meta": {"hostvars": {}},
        "masters": {"hosts": ["master-node"]},
        "gpu_nodes": {"hosts": list(gpu_hosts)},
    })


def _warnings(ctx):
    return [e.message for e in ctx.log.entries if e.severity == Severity.WARN]


class TestServiceEndpoint:
    """Tests for ServiceEndpoint."""

    def test_url(self):
        assert ServiceEndpoint("Prometheus", 9090).url("10.10.3.24") == "http://10.10.3.24:9090"
        assert ServiceEndpoint("Node Exporter", 9100, "/metrics").url("gpu-01") == "http://gpu-01:9100/metrics"


class TestAccessInfoReporter:
    """Tests for AccessInfoReporter."""

    def test_control_plane_urls(self, make_ctx, config, runner):
        runner.on("--list", stdout=_listing())
        runner.on("--host", "master-node", stdout=json.dumps({"ansible_host": "10.10.3.24"}))
        ctx = make_ctx()

        text = AccessInfoReporter(ctx, config, runner).report(config.inventory)

        assert "Grafana Dashboard: http://10.10.3.24:3030" in text
        assert "Prometheus: http://10.10.3.24:9090" in text
        assert "Username: admin" in text
        assert f"Log file location: {ctx.log.path}" in text

    def test_accelerator_host_endpoints(self, make_ctx, config, runner):
        runner.on("--list", stdout=_listing("gpu-01"))
        runner.on("--host", "gpu-01", stdout=json.dumps({"ansible_host": "10.6.254.75"}))
        ctx = make_ctx()

        text = AccessInfoReporter(ctx, config, runner).report(config.inventory)

        assert "GPU Node (gpu-01):" in text
        assert "GPU Exporter: http://10.6.254.75:9200/metrics" in text
        assert "DCGM Exporter: http://10.6.254.75:9400/metrics" in text
        assert "Node Exporter: http://10.6.254.75:9100/metrics" in text

    def test_host_not_found_falls_back_to_name(self, make_ctx, config, runner):
        """Test a failed host lookup renders the logical name instead of raising."""
        runner.on("--list", stdout=_listing("gpu-07"))
        runner.on("--host", returncode=1, stderr="ERROR! You must pass a single valid host")
        ctx = make_ctx()

        text = AccessInfoReporter(ctx, config, runner).report(config.inventory)

        assert "Grafana Dashboard: http://master-node:3030" in text
        for endpoint in EXPORTER_ENDPOINTS:
            assert f"{endpoint.label}: {endpoint.url('gpu-07')}" in text
        assert any("Using hostname instead" in w for w in _warnings(ctx))

    def test_missing_address_falls_back_to_name(self, make_ctx, config, runner):
        runner.on("--list", stdout=_listing("gpu-08"))
        runner.on("--host", "gpu-08", stdout=json.dumps({"ansible_host": None}))
        ctx = make_ctx()

        text = AccessInfoReporter(ctx, config, runner).report(config.inventory)

        assert "GPU Exporter: http://gpu-08:9200/metrics" in text

    def test_empty_group_warns(self, make_ctx, config, runner):
        runner.on("--list", stdout=_listing())
        ctx = make_ctx()

        text = AccessInfoReporter(ctx, config, runner).report(config.inventory)

        assert "/metrics" not in text
        assert "No hosts found in inventory group gpu_nodes." in _warnings(ctx)

    def test_unreadable_inventory_degrades(self, make_ctx, config, runner):
        runner.on("ansible-inventory", returncode=1)
        ctx = make_ctx()

        text = AccessInfoReporter(ctx, config, runner).report(config.inventory)

        assert "Prometheus: http://master-node:9090" in text
        assert "Could not parse gpu_nodes hosts from inventory." in _warnings(ctx)

    def test_service_commands(self, make_ctx, config, runner):
        config.exporter_units = ["cmstack-gpu-exporter", "cmstack-disk-exporter"]
        ctx = make_ctx()

        text = AccessInfoReporter(ctx, config, runner).report(config.inventory)

        assert "sudo systemctl status cmstack-gpu-exporter cmstack-disk-exporter" in text
        assert "sudo journalctl -u cmstack-gpu-exporter -f" in text

    def test_no_service_commands_without_units(self, make_ctx, config, runner):
        config.exporter_units = []
        ctx = make_ctx()

        text = AccessInfoReporter(ctx, config, runner).report(config.inventory)

        assert "Service Management Commands" not in text
