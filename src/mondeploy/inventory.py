"""Inventory queries for mondeploy.

The inventory is read through ``ansible-inventory`` so that every format the
automation engine accepts (YAML, INI, dynamic scripts) works unchanged. This
module turns its JSON output into read-only HostRecord objects.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .process import CommandRunner
from .types import HostRecord

logger = logging.getLogger(__name__)

INVENTORY_COMMAND = "ansible-inventory"


@dataclass
class InventoryListing:
    """Hosts and group memberships from ``ansible-inventory --list``.

    Attributes:
        groups: Mapping of group name to member host names
        hosts: Mapping of host name to HostRecord

    Example:
        >>> listing = parse_inventory_listing({
        ...     "gpu_nodes": {"hosts": ["gpu-01"]},
        ...     "_meta": {"hostvars": {"gpu-01": {"ansible_host": "10.0.0.5"}}},
        ... })
        >>> listing.group_hosts("gpu_nodes")[0].address
        '10.0.0.5'
    """

    groups: dict[str, list[str]] = field(default_factory=dict)
    hosts: dict[str, HostRecord] = field(default_factory=dict)

    def group_hosts(self, group: str) -> list[HostRecord]:
        """Get the hosts of a group in inventory order."""
        return [self.hosts[name] for name in self.groups.get(group, []) if name in self.hosts]

    def list_groups(self) -> list[str]:
        return list(self.groups)


def parse_inventory_listing(data: dict[str, Any]) -> InventoryListing:
    """Parse the JSON produced by ``ansible-inventory --list``.

    Args:
        data: Parsed JSON inventory data

    Returns:
        InventoryListing with every host and its group memberships

    Note:
        Expected format:

            {
              "all": {"children": ["gpu_nodes", "ungrouped"]},
              "gpu_nodes": {"hosts": ["gpu-01", "gpu-02"]},
              "_meta": {
                "hostvars": {
                  "gpu-01": {"ansible_host": "10.6.254.75"},
                  "gpu-02": {"ansible_host": "10.6.254.76"}
                }
              }
            }
    """
    hostvars = data.get("_meta", {}).get("hostvars", {})
    groups: dict[str, list[str]] = {}
    memberships: dict[str, list[str]] = {}

    for group_name, group_data in data.items():
        if group_name == "_meta" or not isinstance(group_data, dict):
            continue

        hosts_list = group_data.get("hosts")
        if not isinstance(hosts_list, list):
            continue

        groups[group_name] = [str(name) for name in hosts_list]
        for host_name in groups[group_name]:
            memberships.setdefault(host_name, []).append(group_name)

    # Hosts only known through hostvars still belong to the inventory
    for host_name in hostvars:
        memberships.setdefault(host_name, [])

    hosts = {
        name: host_from_vars(name, hostvars.get(name, {}), tuple(member_of))
        for name, member_of in memberships.items()
    }
    return InventoryListing(groups=groups, hosts=hosts)


def host_from_vars(
    host_name: str,
    host_data: dict[str, Any] | None,
    groups: tuple[str, ...] = (),
) -> HostRecord:
    """Create a HostRecord from a host variables dictionary.

    A missing, null or empty ``ansible_host`` leaves the address unset so
    callers fall back to the logical name.
    """
    if not isinstance(host_data, dict):
        host_data = {}

    address = host_data.get("ansible_host")
    if address in (None, "", "null"):
        address = None

    return HostRecord(
        name=host_name,
        address=str(address) if address is not None else None,
        groups=groups,
        vars={k: v for k, v in host_data.items() if k != "ansible_host"},
    )


class InventoryClient:
    """Queries an inventory through ``ansible-inventory``.

    Attributes:
        runner: Runner used to invoke ansible-inventory
        inventory: Inventory file passed with ``-i``
        env: Extra environment for the inventory command
    """

    def __init__(
        self,
        runner: CommandRunner,
        inventory: Path,
        env: dict[str, str] | None = None,
    ) -> None:
        self.runner = runner
        self.inventory = inventory
        self.env = env or {}

    def is_valid(self) -> bool:
        """Check that the inventory parses under the engine's own listing command."""
        return self.runner.capture(self._argv("--list"), env=self.env).ok

    def list_hosts(self) -> InventoryListing | None:
        """List all hosts and groups.

        Returns:
            InventoryListing, or None if the inventory cannot be listed or parsed
        """
        output = self.runner.capture(self._argv("--list"), env=self.env)
        if not output.ok:
            logger.debug(f"Inventory listing failed ({output.returncode}): {output.stderr.strip()}")
            return None
        try:
            data = json.loads(output.stdout)
        except json.JSONDecodeError as e:
            logger.debug(f"Inventory listing is not valid JSON: {e}")
            return None
        if not isinstance(data, dict):
            return None
        return parse_inventory_listing(data)

    def host(self, name: str) -> HostRecord | None:
        """Look up a single host.

        Returns:
            HostRecord, or None when the host is unknown or the lookup fails
        """
        output = self.runner.capture(self._argv("--host", name), env=self.env)
        if not output.ok:
            logger.debug(f"Host lookup for {name} failed ({output.returncode})")
            return None
        try:
            data = json.loads(output.stdout)
        except json.JSONDecodeError:
            logger.debug(f"Host lookup for {name} returned invalid JSON")
            return None
        if not isinstance(data, dict):
            return None
        return host_from_vars(name, data)

    def _argv(self, *args: str) -> list[str]:
        return [INVENTORY_COMMAND, "-i", str(self.inventory), *args]
