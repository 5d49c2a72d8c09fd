"""Access information for a deployed monitoring stack.

Renders the web interface URLs of the control-plane host and the exporter
endpoints of every accelerator host. This is a read-only diagnostic path: any
host that cannot be looked up is shown by its logical name instead.
"""

from dataclasses import dataclass
from pathlib import Path

from .config import DeployConfig
from .inventory import InventoryClient
from .process import CommandRunner
from .types import HostRecord, RunContext


@dataclass(frozen=True)
class ServiceEndpoint:
    """A known service port on a host.

    Example:
        >>> ServiceEndpoint("Node Exporter", 9100, "/metrics").url("10.0.0.5")
        'http://10.0.0.5:9100/metrics'
    """

    label: str
    port: int
    path: str = ""

    def url(self, address: str) -> str:
        return f"http://{address}:{self.port}{self.path}"


GRAFANA = ServiceEndpoint("Grafana Dashboard", 3030)
PROMETHEUS = ServiceEndpoint("Prometheus", 9090)

EXPORTER_ENDPOINTS = (
    ServiceEndpoint("GPU Exporter", 9200, "/metrics"),
    ServiceEndpoint("DCGM Exporter", 9400, "/metrics"),
    ServiceEndpoint("Node Exporter", 9100, "/metrics"),
)


class AccessInfoReporter:
    """Builds the human-readable access report from the inventory."""

    def __init__(self, ctx: RunContext, config: DeployConfig, runner: CommandRunner) -> None:
        self.ctx = ctx
        self.config = config
        self.runner = runner

    def report(self, inventory: Path) -> str:
        """Render endpoint URLs for the control plane and accelerator hosts.

        Never raises on missing or partial inventory data.
        """
        log = self.ctx.log
        client = InventoryClient(self.runner, inventory, env=self.config.engine_env)

        control_plane = self._resolve(client, self.config.control_plane_host)
        if control_plane.address is None:
            log.warning(
                f"Control plane host {control_plane.name} has no address in inventory. "
                "Using hostname instead."
            )
        master = control_plane.display_address

        lines = [
            "Monitoring stack access information:",
            "",
            "Web Interfaces:",
            f"   {GRAFANA.label}: {GRAFANA.url(master)}",
            f"   Username: {self.config.grafana_user}",
            f"   Password: {self.config.grafana_password}",
            "",
            f"   {PROMETHEUS.label}: {PROMETHEUS.url(master)}",
            "",
            "Individual exporter endpoints:",
        ]
        lines.extend(self._exporter_lines(client))
        lines.extend(self._service_lines())
        lines.append(f"Log file location: {log.path}")
        return "\n".join(lines)

    def _exporter_lines(self, client: InventoryClient) -> list[str]:
        log = self.ctx.log
        group = self.config.accelerator_group

        listing = client.list_hosts()
        if listing is None:
            log.warning(f"Could not parse {group} hosts from inventory.")
            return [""]

        names = [host.name for host in listing.group_hosts(group)]
        if not names:
            log.warning(f"No hosts found in inventory group {group}.")
            return [""]

        lines: list[str] = []
        for name in names:
            address = self._resolve(client, name).display_address
            lines.append(f"  GPU Node ({name}):")
            lines.extend(f"     {endpoint.label}: {endpoint.url(address)}" for endpoint in EXPORTER_ENDPOINTS)
            lines.append("")
        return lines

    def _service_lines(self) -> list[str]:
        units = self.config.exporter_units
        if not units:
            return []
        first = units[0]
        return [
            "Service Management Commands:",
            f"  Check status: sudo systemctl status {' '.join(units)}",
            f"  View logs:    sudo journalctl -u {first} -f",
            f"  Restart:      sudo systemctl restart {first}",
            "",
        ]

    def _resolve(self, client: InventoryClient, name: str) -> HostRecord:
        return client.host(name) or HostRecord(name=name)
