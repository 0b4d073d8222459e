"""
Hypervisor secret registration.

The compute hypervisor authenticates to the cluster with a libvirt secret
holding the block identity's key. Only the define/undefine contract lives
here; the XML document is the minimal usage=ceph form.
"""

import logging
import os
import tempfile
from typing import List, Tuple

from cephstack.services.admin import CommandRunner

logger = logging.getLogger(__name__)

SECRET_TEMPLATE = """<secret ephemeral='no' private='no'>
  <uuid>{uuid}</uuid>
  <usage type='ceph'>
    <name>{entity} secret</name>
  </usage>
</secret>
"""


class HypervisorSecrets:
    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def list(self) -> List[Tuple[str, str]]:
        """(uuid, usage) pairs reported by virsh"""
        result = self.runner.run(["virsh", "secret-list"], check=False)
        secrets = []
        for line in result.stdout.splitlines():
            parts = line.split(None, 1)
            if not parts or len(parts[0]) != 36 or parts[0].count("-") != 4:
                continue
            secrets.append((parts[0], parts[1].strip() if len(parts) > 1 else ""))
        return secrets

    def define(self, secret_uuid: str, entity: str, key: str) -> None:
        if any(uuid == secret_uuid for uuid, _ in self.list()):
            logger.info(f"Hypervisor secret {secret_uuid} already defined")
            return

        fd, path = tempfile.mkstemp(suffix=".xml", prefix="ceph-secret-")
        try:
            with os.fdopen(fd, "w") as handle:
                handle.write(SECRET_TEMPLATE.format(uuid=secret_uuid, entity=entity))
            self.runner.run(["virsh", "secret-define", "--file", path])
        finally:
            os.unlink(path)

        self.runner.run(["virsh", "secret-set-value", "--secret", secret_uuid, "--base64", key])
        logger.info(f"Defined hypervisor secret {secret_uuid} for {entity}")

    def undefine_all(self) -> List[str]:
        """Best-effort removal of every ceph-usage secret"""
        removed = []
        for secret_uuid, usage in self.list():
            if usage and not usage.startswith("ceph"):
                continue
            self.runner.run(["virsh", "secret-undefine", secret_uuid], check=False)
            removed.append(secret_uuid)
        return removed
