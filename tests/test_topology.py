import pytest
from pydantic import ValidationError

from cephstack.models import ClusterTopology, Consumer
from cephstack.topology import (
    ClusterConfig,
    PoolSpec,
    RunContext,
    build_cluster_config,
)

FSID = "4b5c8c0a-ff60-454b-a1b4-9747aa737d19"


def test_every_pool_follows_replica_count(settings_factory):
    config = build_cluster_config(settings_factory(CEPH_REPLICAS=3, ENABLE_CEPH_MANILA=True), FSID, "node1")

    sizes = {pool.size for binding in config.bindings for pool in binding.pools}
    assert sizes == {3}


def test_pool_size_mismatch_rejected(settings_factory):
    config = build_cluster_config(settings_factory(), FSID, "node1")
    bindings = list(config.bindings)
    image = bindings[0]
    bindings[0] = image.model_copy(update={"pools": (PoolSpec(name="images", pg_num=8, size=2),)})

    with pytest.raises(ValidationError):
        ClusterConfig(**{**config.model_dump(), "bindings": tuple(bindings)})


def test_image_store_caps(settings_factory):
    config = build_cluster_config(settings_factory(), FSID, "node1")
    credential = config.binding(Consumer.IMAGE_STORE).credential

    assert credential.entity == "client.glance"
    assert credential.caps["mon"] == "allow r"
    assert credential.caps["osd"] == "allow class-read object_prefix rbd_children, allow rwx pool=images"
    assert credential.keyring_path.name == "ceph.client.glance.keyring"
    assert credential.owner == "stack"


def test_compute_shares_block_store_identity(settings_factory):
    config = build_cluster_config(settings_factory(), FSID, "node1")
    compute = config.binding(Consumer.COMPUTE)
    block = config.binding(Consumer.BLOCK_STORE)

    assert compute.credential == block.credential
    assert compute.shares_credential
    assert not block.shares_credential
    assert block.credential.caps["osd"] == (
        "allow class-read object_prefix rbd_children, "
        "allow rwx pool=volumes, allow rwx pool=vms, allow rx pool=images"
    )


def test_compute_owns_identity_without_block_store(settings_factory):
    config = build_cluster_config(settings_factory(ENABLE_CEPH_CINDER=False), FSID, "node1")
    compute = config.binding(Consumer.COMPUTE)

    assert compute.credential.entity == "client.cinder"
    assert not compute.shares_credential
    assert "pool=volumes" not in compute.credential.caps["osd"]


def test_grants_omit_disabled_image_store(settings_factory):
    config = build_cluster_config(settings_factory(ENABLE_CEPH_GLANCE=False), FSID, "node1")
    assert "pool=images" not in config.binding(Consumer.BLOCK_STORE).credential.caps["osd"]


def test_gateway_has_no_pools_and_lives_in_data_dir(settings_factory):
    settings = settings_factory(ENABLE_CEPH_RGW=True)
    config = build_cluster_config(settings, FSID, "node1")
    gateway = config.binding(Consumer.OBJECT_GATEWAY)

    assert gateway.pools == ()
    assert gateway.credential.entity == "client.radosgw.gateway"
    assert gateway.credential.keyring_path == config.gateway_dir / "keyring"


def test_topology_and_secret_uuid(settings_factory):
    remote = build_cluster_config(settings_factory(REMOTE_CEPH=True), FSID, "node1")
    assert remote.topology == ClusterTopology.REMOTE
    assert remote.gateway_topology == ClusterTopology.EMBEDDED
    assert remote.secret_uuid == build_cluster_config(settings_factory(), FSID, "node1").secret_uuid

    pinned = build_cluster_config(
        settings_factory(CINDER_CEPH_UUID="d2c5e1a4-1111-4a4a-9b9b-0123456789ab"), FSID, "node1"
    )
    assert pinned.secret_uuid == "d2c5e1a4-1111-4a4a-9b9b-0123456789ab"


def test_run_context_is_immutable():
    context = RunContext(fsid=FSID)
    updated = context.with_credential("client.glance").with_credential("client.glance")

    assert context.credentials == ()
    assert updated.credentials == ("client.glance",)
    with pytest.raises(ValidationError):
        context.run_as = "ceph"
