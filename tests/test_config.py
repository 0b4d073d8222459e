from pathlib import Path

import pytest

from cephstack.config import load_overrides_file, load_settings
from cephstack.errors import ConfigurationError


def test_defaults_follow_devstack_layout():
    settings = load_settings(environ={"STACK_USER": "stack"})

    assert settings.data_dir == Path("/var/lib/ceph")
    assert settings.conf_file == Path("/etc/ceph/ceph.conf")
    assert settings.disk_image == Path("/var/lib/ceph-drives/ceph.img")
    assert settings.state_db == "sqlite:////var/lib/cephstack/state.db"
    assert settings.replicas == 1
    assert settings.enable_glance and settings.enable_nova and settings.enable_cinder
    assert not settings.enable_manila and not settings.enable_rgw
    assert settings.remote_ceph is False


def test_environment_values_are_typed():
    settings = load_settings(environ={
        "CEPH_REPLICAS": "3",
        "REMOTE_CEPH": "True",
        "ENABLE_CEPH_NOVA": "no",
        "CEPH_DATA_DIR": "/srv/ceph",
        "GLANCE_CEPH_POOL_PG": "32",
    })

    assert settings.replicas == 3
    assert settings.remote_ceph is True
    assert settings.enable_nova is False
    assert settings.conf_file == Path("/etc/ceph/ceph.conf")
    assert settings.disk_image == Path("/srv/ceph-drives/ceph.img")
    assert settings.glance_pool_pg == 32


def test_invalid_integer_falls_back_to_default():
    settings = load_settings(environ={"CEPH_REPLICAS": "many"})
    assert settings.replicas == 1


def test_zero_replicas_rejected():
    with pytest.raises(ConfigurationError):
        load_settings(environ={"CEPH_REPLICAS": "0"})


def test_relative_data_dir_rejected():
    with pytest.raises(ConfigurationError):
        load_settings(environ={"CEPH_DATA_DIR": "var/lib/ceph"})


def test_overrides_applied_after_environment():
    settings = load_settings(
        environ={"CEPH_REPLICAS": "2"},
        overrides={"CEPH_REPLICAS": 3, "ENABLE_CEPH_RGW": True},
    )
    assert settings.replicas == 3
    assert settings.enable_rgw is True


def test_overrides_file_rejects_unknown_keys(tmp_path):
    path = tmp_path / "cephstack.yaml"
    path.write_text("CEPH_REPLICAS: 2\nNOT_A_SETTING: 1\n")

    with pytest.raises(ConfigurationError, match="NOT_A_SETTING"):
        load_overrides_file(str(path))


def test_overrides_file_loads_mapping(tmp_path):
    path = tmp_path / "cephstack.yaml"
    path.write_text("CEPH_REPLICAS: 2\nENABLE_CEPH_MANILA: true\n")

    assert load_overrides_file(str(path)) == {"CEPH_REPLICAS": 2, "ENABLE_CEPH_MANILA": True}


def test_missing_overrides_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_overrides_file(str(tmp_path / "absent.yaml"))
