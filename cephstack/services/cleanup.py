"""
Teardown/Cleanup Coordinator

Two mutually exclusive strategies, chosen by cluster topology:
- Remote: the cluster is shared and externally owned, so only the pools and
  credentials of enabled consumers are removed. Requires confirmation.
- Embedded: every local daemon is killed, the backing image is unmounted and
  deleted, and the data and configuration directories are wiped entirely.

Independently of topology, hypervisor secrets are undefined when a compute or
block-store integration was active.
"""

import logging
from typing import Optional, Set

from cephstack.errors import CleanupNotConfirmed
from cephstack.models import ClusterTopology, Consumer, PROVISION_ORDER
from cephstack.services.admin import CephAdmin, CommandRunner
from cephstack.services.disk import BackingDisk
from cephstack.services.hypervisor import HypervisorSecrets
from cephstack.services.supervisor import ProcessSupervisor
from cephstack.topology import ClusterConfig, RunContext

logger = logging.getLogger(__name__)


class CleanupCoordinator:
    def __init__(
        self,
        config: ClusterConfig,
        admin: CephAdmin,
        runner: CommandRunner,
        supervisor: ProcessSupervisor,
        disk: BackingDisk,
        hypervisor: Optional[HypervisorSecrets] = None,
    ):
        self.config = config
        self.admin = admin
        self.runner = runner
        self.supervisor = supervisor
        self.disk = disk
        self.hypervisor = hypervisor

    def cleanup(self, context: RunContext, confirmed: bool = False) -> RunContext:
        if self.config.topology == ClusterTopology.REMOTE:
            self.cleanup_remote(confirmed)
        else:
            self.cleanup_embedded()

        self.remove_hypervisor_secrets()
        return context.evolve(crush_rule=None, osd_ids=(), pools=(), credentials=())

    def cleanup_remote(self, confirmed: bool) -> None:
        """Delete only what this deployment put on the shared cluster"""
        if not confirmed:
            raise CleanupNotConfirmed(
                "Deleting pools on a remote cluster requires --yes-i-really-really-mean-it"
            )

        removed_entities: Set[str] = set()
        for consumer in PROVISION_ORDER:
            binding = self.config.binding(consumer)
            if not binding.enabled:
                continue
            if consumer == Consumer.OBJECT_GATEWAY and self.config.gateway_topology == ClusterTopology.REMOTE:
                continue

            if consumer == Consumer.SHARED_FS:
                self._remove_filesystem()

            for pool in binding.pools:
                logger.info(f"Deleting pool {pool.name} ({consumer.value})")
                self.admin.pool_delete(pool.name)

            credential = binding.credential
            if credential is None or credential.entity in removed_entities:
                continue
            logger.info(f"Deleting credential {credential.entity} ({consumer.value})")
            # already-absent entities are not an error on rerun
            self.admin.auth_del(credential.entity, check=False)
            self.runner.run(["rm", "-f", credential.keyring_path])
            removed_entities.add(credential.entity)

    def _remove_filesystem(self) -> None:
        # pools backing a filesystem cannot be deleted while it exists
        name = self.config.filesystem
        if name not in self.admin.fs_names():
            return
        logger.info(f"Removing filesystem {name}")
        self.admin.fs_rm(name)

    def cleanup_embedded(self) -> None:
        """Full local wipe; not scoped per consumer"""
        gateway = (
            self.config.enabled(Consumer.OBJECT_GATEWAY)
            and self.config.gateway_topology == ClusterTopology.EMBEDDED
        )
        self.supervisor.kill_all(mds=self.config.enabled(Consumer.SHARED_FS), gateway=gateway)
        self.disk.destroy()
        logger.info(f"Purging {self.config.data_dir} and {self.config.conf_dir}")
        self.runner.remove_tree(self.config.data_dir, self.config.conf_dir)

    def remove_hypervisor_secrets(self) -> None:
        if not self.config.uses_hypervisor_secret or self.hypervisor is None:
            return
        removed = self.hypervisor.undefine_all()
        if removed:
            logger.info(f"Undefined hypervisor secrets: {', '.join(removed)}")
