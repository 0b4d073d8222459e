"""
Consumer Provisioner

Creates each enabled consumer's pools, applies the replica count and the
shared placement rule, and mints a least-privilege credential persisted to a
keyring file owned by the deployment account.

Flow per consumer (in PROVISION_ORDER):
1. Create pool(s) with the consumer's placement-group count
2. Set pool size to the cluster replica count
3. If replicas != 1, attach the shared placement rule (created once)
4. Mint the credential, unless the identity belongs to another consumer
5. Persist the keyring and hand it to the unprivileged account

A failure leaves consumers provisioned so far in place; rerunning is safe
because every step is get-or-create.
"""

from __future__ import annotations

import logging
from typing import Optional

from cephstack.config import Settings
from cephstack.errors import AdminCommandError, GatewayEndpointMissing
from cephstack.models import ClusterTopology, Consumer, PROVISION_ORDER
from cephstack.services.admin import CephAdmin, CommandRunner
from cephstack.services.catalog import CatalogClient, TrustStore, swift_endpoint_url
from cephstack.services.conf_file import gateway_options, merge_into_file, shared_fs_client_options
from cephstack.services.hypervisor import HypervisorSecrets
from cephstack.services.supervisor import ProcessSupervisor
from cephstack.topology import (
    CRUSH_RULE_NAME,
    GATEWAY_ENTITY,
    ClusterConfig,
    ConsumerBinding,
    CrushRule,
    PoolSpec,
    RunContext,
)

logger = logging.getLogger(__name__)


class ConsumerProvisioner:
    def __init__(
        self,
        settings: Settings,
        config: ClusterConfig,
        admin: CephAdmin,
        runner: CommandRunner,
        supervisor: ProcessSupervisor,
        hypervisor: Optional[HypervisorSecrets] = None,
        catalog: Optional[CatalogClient] = None,
    ):
        self.settings = settings
        self.config = config
        self.admin = admin
        self.runner = runner
        self.supervisor = supervisor
        self.hypervisor = hypervisor
        self.catalog = catalog

    # ------------------------------------------------------------------
    # Placement rule
    # ------------------------------------------------------------------

    def ensure_crush_rule(self, context: RunContext) -> RunContext:
        """Create the shared placement rule once; never when replicas == 1"""
        if self.config.replicas == 1:
            return context
        if context.crush_rule is not None:
            return context

        self.admin.crush_rule_create_simple(CRUSH_RULE_NAME, "default", "osd")
        dump = self.admin.crush_rule_dump(CRUSH_RULE_NAME)
        rule_id = dump.get("rule_id", dump.get("ruleset"))
        if rule_id is None:
            raise AdminCommandError(
                ["ceph", "osd", "crush", "rule", "dump", CRUSH_RULE_NAME], 0,
                f"no rule id in dump of placement rule {CRUSH_RULE_NAME}: {dump}",
            )
        rule = CrushRule(name=CRUSH_RULE_NAME, rule_id=int(rule_id))
        logger.info(f"Placement rule {rule.name} has id {rule.rule_id}")
        return context.evolve(crush_rule=rule)

    def apply_pool_policy(self, pool_name: str, context: RunContext) -> Optional[CrushRule]:
        """Set replica size and, when replicated, the shared rule on an existing pool"""
        self.admin.pool_set(pool_name, "size", self.config.replicas)
        if self.config.replicas != 1:
            self.admin.pool_set(pool_name, "crush_ruleset", context.crush_rule.rule_id)
            return context.crush_rule
        return None

    # ------------------------------------------------------------------
    # Pools and credentials
    # ------------------------------------------------------------------

    def create_pool(self, spec: PoolSpec, context: RunContext) -> RunContext:
        context = self.ensure_crush_rule(context)
        logger.info(f"Creating pool {spec.name} (pg_num={spec.pg_num}, size={spec.size})")
        self.admin.pool_create(spec.name, spec.pg_num)
        rule = self.apply_pool_policy(spec.name, context)
        return context.with_pool(spec.model_copy(update={"crush_rule": rule}))

    def mint_credential(self, binding: ConsumerBinding, context: RunContext, owner: Optional[str]) -> RunContext:
        credential = binding.credential
        if binding.shares_credential:
            logger.info(
                f"{binding.consumer.value} reuses {credential.entity} minted for "
                f"{binding.credential_owner.value}"
            )
            return context

        logger.info(f"Minting {credential.entity} for {binding.consumer.value}")
        self.runner.make_dirs(credential.keyring_path.parent)
        self.admin.auth_get_or_create(credential.entity, credential.cap_args(), credential.keyring_path)
        if owner:
            self.runner.chown(owner, credential.keyring_path)
        return context.with_credential(credential.entity)

    def _keyring_owner(self, binding: ConsumerBinding, context: RunContext) -> Optional[str]:
        if binding.consumer == Consumer.OBJECT_GATEWAY:
            return f"{context.run_as}:{context.run_as}" if context.run_as else None
        return binding.credential.owner

    def provision_consumer(self, binding: ConsumerBinding, context: RunContext) -> RunContext:
        for spec in binding.pools:
            context = self.create_pool(spec, context)

        if binding.consumer == Consumer.SHARED_FS:
            context = self._provision_filesystem(context)

        if binding.consumer == Consumer.OBJECT_GATEWAY:
            return self._provision_gateway(binding, context)

        return self.mint_credential(binding, context, self._keyring_owner(binding, context))

    def provision_all(self, context: RunContext) -> RunContext:
        """Provision every enabled consumer in dependency order"""
        context = self.ensure_crush_rule(context)

        for consumer in PROVISION_ORDER:
            binding = self.config.binding(consumer)
            if not binding.enabled:
                logger.info(f"Skipping {consumer.value} (disabled)")
                continue
            logger.info(f"Provisioning {consumer.value}")
            context = self.provision_consumer(binding, context)

        if self.config.uses_hypervisor_secret and self.hypervisor is not None:
            self._register_hypervisor_secret()

        return context

    # ------------------------------------------------------------------
    # Consumer specifics
    # ------------------------------------------------------------------

    def _provision_filesystem(self, context: RunContext) -> RunContext:
        name = self.config.filesystem
        if name in self.admin.fs_names():
            logger.info(f"Filesystem {name} already exists")
        else:
            self.admin.fs_new(name, self.settings.cephfs_metadata_pool, self.settings.cephfs_data_pool)
        self.admin.mds_allow_new_snaps()
        merge_into_file(
            self.runner,
            self.config.conf_file,
            f"client.{self.settings.manila_user}",
            shared_fs_client_options(self.settings.manila_user),
        )
        return context

    def _register_hypervisor_secret(self) -> None:
        credential = self.config.binding(Consumer.BLOCK_STORE).credential
        key = self.admin.auth_get_key(credential.entity)
        self.hypervisor.define(self.config.secret_uuid, credential.entity, key)

    def _identity_url(self) -> str:
        if self.settings.rgw_identity_url:
            return self.settings.rgw_identity_url
        return f"{self.settings.service_protocol}://{self.config.service_host}:35357"

    def _register_catalog(self, url: str) -> None:
        if self.settings.catalog_backend != "sql":
            logger.info(f"Catalog backend is {self.settings.catalog_backend}, not registering {url}")
            return
        if self.catalog is None:
            logger.warning(f"No identity service configured, not registering {url}")
            return
        self.catalog.register_endpoint(url, self.settings.region_name)

    def _provision_gateway(self, binding: ConsumerBinding, context: RunContext) -> RunContext:
        if self.config.gateway_topology == ClusterTopology.REMOTE:
            return self.register_remote_gateway(context)

        dest = self.config.gateway_dir
        self.runner.make_dirs(dest)
        context = self.mint_credential(binding, context, self._keyring_owner(binding, context))
        merge_into_file(
            self.runner,
            self.config.conf_file,
            GATEWAY_ENTITY,
            gateway_options(self.config, self.settings.rgw_port, self._identity_url(), self.settings.service_token),
        )
        self.supervisor.mark(dest, "done")
        if context.run_as:
            self.runner.chown(f"{context.run_as}:{context.run_as}", dest, recursive=True)

        TrustStore(self.runner, dest / "nss").import_identity_certificates(
            self.settings.keystone_ca_cert, self.settings.keystone_signing_cert
        )

        url = swift_endpoint_url(
            f"{self.settings.service_protocol}://{self.config.service_host}:{self.settings.rgw_port}"
        )
        self._register_catalog(url)
        return context

    def register_remote_gateway(self, context: RunContext) -> RunContext:
        if not self.settings.remote_rgw_url:
            raise GatewayEndpointMissing(
                "REMOTE_CEPH_RGW is enabled thus CEPH_REMOTE_RGW_URL must be defined"
            )
        self._register_catalog(swift_endpoint_url(self.settings.remote_rgw_url))
        return context
