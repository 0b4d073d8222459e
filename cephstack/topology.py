"""
Cluster configuration model.

Resolves settings into the topology every phase reads: replica count, paths,
per-consumer pools and credentials, and the cluster identifier. Built once
per invocation and never mutated; per-run facts learned by later phases live
in RunContext instead.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cephstack.config import Settings
from cephstack.models import ClusterTopology, Consumer, LifecyclePhase

RBD_OBJECT_PREFIX = "allow class-read object_prefix rbd_children"
CRUSH_RULE_NAME = "devstack"
GATEWAY_ENTITY = "client.radosgw.gateway"


class CrushRule(BaseModel):
    """Placement rule spreading replicas across OSDs instead of hosts"""

    model_config = ConfigDict(frozen=True)

    name: str
    rule_id: int = Field(ge=0)


class PoolSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    pg_num: int = Field(ge=1)
    size: int = Field(ge=1)
    crush_rule: Optional[CrushRule] = None


class Credential(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity: str
    caps: Dict[str, str]
    keyring_path: Path
    owner: Optional[str] = None

    def cap_args(self) -> list[str]:
        args: list[str] = []
        for daemon in ("mon", "osd", "mds"):
            if daemon in self.caps:
                args.extend([daemon, self.caps[daemon]])
        return args


class ConsumerBinding(BaseModel):
    """
    A consumer and what it needs from the cluster.

    credential_owner names the consumer that mints the credential; when it is
    a different consumer the identity is shared and nothing is minted here.
    """

    model_config = ConfigDict(frozen=True)

    consumer: Consumer
    enabled: bool
    pools: Tuple[PoolSpec, ...] = ()
    credential: Optional[Credential] = None
    credential_owner: Optional[Consumer] = None

    @property
    def shares_credential(self) -> bool:
        return self.credential_owner is not None and self.credential_owner != self.consumer


class ClusterConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    fsid: str
    hostname: str
    replicas: int = Field(ge=1)
    data_dir: Path
    conf_dir: Path
    conf_file: Path
    disk_image: Path
    disk_size: str
    topology: ClusterTopology
    gateway_topology: ClusterTopology
    service_host: str
    stack_user: str
    secret_uuid: str
    filesystem: str = "cephfs"
    bindings: Tuple[ConsumerBinding, ...]

    @model_validator(mode="after")
    def _pools_follow_replicas(self) -> "ClusterConfig":
        for binding in self.bindings:
            for pool in binding.pools:
                if pool.size != self.replicas:
                    raise ValueError(
                        f"Pool {pool.name} size {pool.size} does not match replica count {self.replicas}"
                    )
        return self

    @property
    def admin_keyring(self) -> Path:
        return self.conf_dir / "ceph.client.admin.keyring"

    @property
    def tmp_dir(self) -> Path:
        return self.data_dir / "tmp"

    @property
    def mon_dir(self) -> Path:
        return self.data_dir / "mon" / f"ceph-{self.hostname}"

    @property
    def mds_dir(self) -> Path:
        return self.data_dir / "mds" / f"ceph-{self.hostname}"

    @property
    def gateway_dir(self) -> Path:
        return self.data_dir / "radosgw" / f"ceph-radosgw.{self.hostname}"

    def osd_dir(self, osd_id: int) -> Path:
        return self.data_dir / "osd" / f"ceph-{osd_id}"

    def binding(self, consumer: Consumer) -> ConsumerBinding:
        for binding in self.bindings:
            if binding.consumer == consumer:
                return binding
        raise KeyError(consumer)

    def enabled(self, consumer: Consumer) -> bool:
        return self.binding(consumer).enabled

    def enabled_bindings(self) -> list[ConsumerBinding]:
        return [b for b in self.bindings if b.enabled]

    @property
    def uses_hypervisor_secret(self) -> bool:
        return self.enabled(Consumer.COMPUTE) or self.enabled(Consumer.BLOCK_STORE)


class RunContext(BaseModel):
    """
    Run-scoped facts written by earlier phases and read by later ones.

    Immutable: phases return an evolved copy which the sequencer persists.
    """

    model_config = ConfigDict(frozen=True)

    fsid: str
    phase: LifecyclePhase = LifecyclePhase.UNINSTALLED
    run_as: Optional[str] = None
    client_version: Optional[str] = None
    daemon_version: Optional[str] = None
    crush_rule: Optional[CrushRule] = None
    osd_ids: Tuple[int, ...] = ()
    pools: Tuple[PoolSpec, ...] = ()
    credentials: Tuple[str, ...] = ()
    updated_at: Optional[datetime] = None

    def evolve(self, **changes) -> "RunContext":
        return self.model_copy(update=changes)

    def with_pool(self, pool: PoolSpec) -> "RunContext":
        others = tuple(p for p in self.pools if p.name != pool.name)
        return self.evolve(pools=others + (pool,))

    def with_credential(self, entity: str) -> "RunContext":
        if entity in self.credentials:
            return self
        return self.evolve(credentials=self.credentials + (entity,))


def _keyring(settings: Settings, user: str) -> Path:
    return settings.conf_dir / f"ceph.client.{user}.keyring"


def _rbd_caps(*grants: str) -> Dict[str, str]:
    return {"mon": "allow r", "osd": ", ".join((RBD_OBJECT_PREFIX,) + grants)}


def _block_identity_caps(settings: Settings) -> Dict[str, str]:
    """Grants for the identity shared by compute and block-store"""
    grants = []
    if settings.enable_cinder:
        grants.append(f"allow rwx pool={settings.cinder_pool}")
    if settings.enable_nova:
        grants.append(f"allow rwx pool={settings.nova_pool}")
    if settings.enable_glance:
        grants.append(f"allow rx pool={settings.glance_pool}")
    return _rbd_caps(*grants)


def build_bindings(settings: Settings, hostname: str) -> Tuple[ConsumerBinding, ...]:
    """One binding per consumer, enabled or not"""
    replicas = settings.replicas
    owner = settings.stack_user

    def pool(name: str, pg_num: int) -> PoolSpec:
        return PoolSpec(name=name, pg_num=pg_num, size=replicas)

    block_owner = Consumer.BLOCK_STORE if settings.enable_cinder else Consumer.COMPUTE
    block_credential = Credential(
        entity=f"client.{settings.cinder_user}",
        caps=_block_identity_caps(settings),
        keyring_path=_keyring(settings, settings.cinder_user),
        owner=owner,
    )

    manila_mon = ", ".join([
        "allow r",
        'allow command "auth del"',
        'allow command "auth caps"',
        'allow command "auth get"',
        'allow command "auth get-or-create"',
    ])

    gateway_dir = settings.data_dir / "radosgw" / f"ceph-radosgw.{hostname}"

    return (
        ConsumerBinding(
            consumer=Consumer.IMAGE_STORE,
            enabled=settings.enable_glance,
            pools=(pool(settings.glance_pool, settings.glance_pool_pg),),
            credential=Credential(
                entity=f"client.{settings.glance_user}",
                caps=_rbd_caps(f"allow rwx pool={settings.glance_pool}"),
                keyring_path=_keyring(settings, settings.glance_user),
                owner=owner,
            ),
            credential_owner=Consumer.IMAGE_STORE,
        ),
        ConsumerBinding(
            consumer=Consumer.BLOCK_STORE,
            enabled=settings.enable_cinder,
            pools=(pool(settings.cinder_pool, settings.cinder_pool_pg),),
            credential=block_credential,
            credential_owner=block_owner,
        ),
        ConsumerBinding(
            consumer=Consumer.BLOCK_BACKUP,
            enabled=settings.enable_c_bak,
            pools=(pool(settings.cinder_bak_pool, settings.cinder_bak_pool_pg),),
            credential=Credential(
                entity=f"client.{settings.cinder_bak_user}",
                caps=_rbd_caps(f"allow rwx pool={settings.cinder_bak_pool}"),
                keyring_path=_keyring(settings, settings.cinder_bak_user),
                owner=owner,
            ),
            credential_owner=Consumer.BLOCK_BACKUP,
        ),
        ConsumerBinding(
            consumer=Consumer.COMPUTE,
            enabled=settings.enable_nova,
            pools=(pool(settings.nova_pool, settings.nova_pool_pg),),
            credential=block_credential,
            credential_owner=block_owner,
        ),
        ConsumerBinding(
            consumer=Consumer.SHARED_FS,
            enabled=settings.enable_manila,
            pools=(
                pool(settings.cephfs_metadata_pool, settings.cephfs_pool_pg),
                pool(settings.cephfs_data_pool, settings.cephfs_pool_pg),
            ),
            credential=Credential(
                entity=f"client.{settings.manila_user}",
                caps={"mon": manila_mon, "osd": "allow rw", "mds": "allow *"},
                keyring_path=_keyring(settings, settings.manila_user),
                owner=owner,
            ),
            credential_owner=Consumer.SHARED_FS,
        ),
        # The gateway daemon creates its own pools on first start
        ConsumerBinding(
            consumer=Consumer.OBJECT_GATEWAY,
            enabled=settings.enable_rgw,
            credential=Credential(
                entity=GATEWAY_ENTITY,
                caps={"mon": "allow rw", "osd": "allow rwx"},
                keyring_path=gateway_dir / "keyring",
            ),
            credential_owner=Consumer.OBJECT_GATEWAY,
        ),
    )


def build_cluster_config(settings: Settings, fsid: str, hostname: str) -> ClusterConfig:
    """
    Resolve settings into the cluster topology.

    Args:
        settings: Loaded settings
        fsid: Cluster identifier for this deployment (generated once per run)
        hostname: Short hostname of the control host
    """
    bindings = build_bindings(settings, hostname)

    return ClusterConfig(
        fsid=fsid,
        hostname=hostname,
        replicas=settings.replicas,
        data_dir=settings.data_dir,
        conf_dir=settings.conf_dir,
        conf_file=settings.conf_file,
        disk_image=settings.disk_image,
        disk_size=settings.loopback_disk_size,
        topology=ClusterTopology.REMOTE if settings.remote_ceph else ClusterTopology.EMBEDDED,
        gateway_topology=ClusterTopology.REMOTE if settings.remote_rgw else ClusterTopology.EMBEDDED,
        service_host=settings.service_host,
        stack_user=settings.stack_user,
        secret_uuid=settings.cinder_uuid or str(uuid.uuid5(uuid.NAMESPACE_URL, f"ceph:{fsid}")),
        filesystem=settings.cephfs_filesystem,
        bindings=bindings,
    )


def new_fsid() -> str:
    return str(uuid.uuid4())
