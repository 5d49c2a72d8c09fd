"""mondeploy - staged deployment orchestrator for a monitoring stack.

Runs pre-flight checks, connectivity probes, playbook validation and one of
several Ansible execution modes against an inventory, logging every step and
running a cleanup playbook when something goes wrong.

Quick Start:
    $ mondeploy check
    $ mondeploy -v dry-run
    $ mondeploy deploy
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
