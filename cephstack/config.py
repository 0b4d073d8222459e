"""
Environment-driven settings for the orchestrator.

Every setting has a devstack-style environment name and a typed fallback. An
optional YAML file (same keys as the environment) is merged on top.
"""

import getpass
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from cephstack.errors import ConfigurationError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = str(environ.get(name, str(default))).strip()
    try:
        return int(raw)
    except ValueError:
        return default


def _bool_env(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = str(environ.get(name, "")).strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    return default


def _str_env(environ: Mapping[str, str], name: str, default: Optional[str]) -> Optional[str]:
    raw = environ.get(name)
    if raw is None or not str(raw).strip():
        return default
    return str(raw).strip()


def _default_stack_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "stack"


class Settings(BaseModel):
    """Resolved, validated settings; immutable once loaded"""

    model_config = ConfigDict(frozen=True)

    data_dir: Path = Path("/var/lib/ceph")
    conf_dir: Path = Path("/etc/ceph")
    conf_file: Path
    disk_image: Path
    loopback_disk_size: str = "8G"
    replicas: int = Field(default=1, ge=1)

    glance_pool: str = "images"
    glance_pool_pg: int = Field(default=8, ge=1)
    glance_user: str = "glance"
    nova_pool: str = "vms"
    nova_pool_pg: int = Field(default=8, ge=1)
    cinder_pool: str = "volumes"
    cinder_pool_pg: int = Field(default=8, ge=1)
    cinder_user: str = "cinder"
    cinder_uuid: Optional[str] = None
    cinder_bak_pool: str = "backups"
    cinder_bak_pool_pg: int = Field(default=8, ge=1)
    cinder_bak_user: str = "cinder-bak"
    cephfs_metadata_pool: str = "cephfs_metadata"
    cephfs_data_pool: str = "cephfs_data"
    cephfs_pool_pg: int = Field(default=8, ge=1)
    cephfs_filesystem: str = "cephfs"
    manila_user: str = "manila"

    rgw_port: int = Field(default=8080, ge=1, le=65535)
    rgw_identity_url: Optional[str] = None
    remote_rgw_url: Optional[str] = None
    remote_ceph: bool = False
    remote_rgw: bool = False
    force_install: bool = False

    enable_glance: bool = True
    enable_nova: bool = True
    enable_cinder: bool = True
    enable_c_bak: bool = True
    enable_manila: bool = False
    enable_rgw: bool = False

    service_host: str = "127.0.0.1"
    service_protocol: str = "http"
    stack_user: str = Field(default_factory=_default_stack_user)
    catalog_backend: str = "sql"
    keystone_url: Optional[str] = None
    service_token: Optional[str] = None
    region_name: str = "RegionOne"
    keystone_ca_cert: Path = Path("/etc/keystone/ssl/certs/ca.pem")
    keystone_signing_cert: Path = Path("/etc/keystone/ssl/certs/signing_cert.pem")

    state_db: str
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _derive_paths(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        data_dir = Path(data.get("data_dir") or "/var/lib/ceph")
        conf_dir = Path(data.get("conf_dir") or "/etc/ceph")
        if not data.get("conf_file"):
            data["conf_file"] = conf_dir / "ceph.conf"
        if not data.get("disk_image"):
            data["disk_image"] = data_dir.parent / "ceph-drives" / "ceph.img"
        if not data.get("state_db"):
            data["state_db"] = f"sqlite:///{data_dir.parent / 'cephstack' / 'state.db'}"
        return data

    @field_validator("data_dir", "conf_dir", "conf_file", "disk_image")
    @classmethod
    def _require_absolute(cls, value: Path) -> Path:
        if not value.is_absolute():
            raise ValueError(f"{value} must be an absolute path")
        return value

    @field_validator("service_protocol")
    @classmethod
    def _require_http_scheme(cls, value: str) -> str:
        if value not in {"http", "https"}:
            raise ValueError("service_protocol must be http or https")
        return value


# field -> (environment name, kind, default); paths derived in the model are None here
SETTINGS_SCHEMA: Dict[str, tuple] = {
    "data_dir": ("CEPH_DATA_DIR", "str", "/var/lib/ceph"),
    "conf_dir": ("CEPH_CONF_DIR", "str", "/etc/ceph"),
    "conf_file": ("CEPH_CONF_FILE", "str", None),
    "disk_image": ("CEPH_DISK_IMAGE", "str", None),
    "loopback_disk_size": ("CEPH_LOOPBACK_DISK_SIZE", "str", "8G"),
    "replicas": ("CEPH_REPLICAS", "int", 1),
    "glance_pool": ("GLANCE_CEPH_POOL", "str", "images"),
    "glance_pool_pg": ("GLANCE_CEPH_POOL_PG", "int", 8),
    "glance_user": ("GLANCE_CEPH_USER", "str", "glance"),
    "nova_pool": ("NOVA_CEPH_POOL", "str", "vms"),
    "nova_pool_pg": ("NOVA_CEPH_POOL_PG", "int", 8),
    "cinder_pool": ("CINDER_CEPH_POOL", "str", "volumes"),
    "cinder_pool_pg": ("CINDER_CEPH_POOL_PG", "int", 8),
    "cinder_user": ("CINDER_CEPH_USER", "str", "cinder"),
    "cinder_uuid": ("CINDER_CEPH_UUID", "str", None),
    "cinder_bak_pool": ("CINDER_BAK_CEPH_POOL", "str", "backups"),
    "cinder_bak_pool_pg": ("CINDER_BAK_CEPH_POOL_PG", "int", 8),
    "cinder_bak_user": ("CINDER_BAK_CEPH_USER", "str", "cinder-bak"),
    "cephfs_metadata_pool": ("CEPHFS_METADATA_POOL", "str", "cephfs_metadata"),
    "cephfs_data_pool": ("CEPHFS_DATA_POOL", "str", "cephfs_data"),
    "cephfs_pool_pg": ("CEPHFS_POOL_PG", "int", 8),
    "cephfs_filesystem": ("CEPHFS_FILESYSTEM", "str", "cephfs"),
    "manila_user": ("MANILA_CEPH_USER", "str", "manila"),
    "rgw_port": ("CEPH_RGW_PORT", "int", 8080),
    "rgw_identity_url": ("CEPH_RGW_IDENTITY_URL", "str", None),
    "remote_rgw_url": ("CEPH_REMOTE_RGW_URL", "str", None),
    "remote_ceph": ("REMOTE_CEPH", "bool", False),
    "remote_rgw": ("REMOTE_CEPH_RGW", "bool", False),
    "force_install": ("FORCE_CEPH_INSTALL", "bool", False),
    "enable_glance": ("ENABLE_CEPH_GLANCE", "bool", True),
    "enable_nova": ("ENABLE_CEPH_NOVA", "bool", True),
    "enable_cinder": ("ENABLE_CEPH_CINDER", "bool", True),
    "enable_c_bak": ("ENABLE_CEPH_C_BAK", "bool", True),
    "enable_manila": ("ENABLE_CEPH_MANILA", "bool", False),
    "enable_rgw": ("ENABLE_CEPH_RGW", "bool", False),
    "service_host": ("SERVICE_HOST", "str", "127.0.0.1"),
    "service_protocol": ("SERVICE_PROTOCOL", "str", "http"),
    "stack_user": ("STACK_USER", "str", None),
    "catalog_backend": ("KEYSTONE_CATALOG_BACKEND", "str", "sql"),
    "keystone_url": ("KEYSTONE_URL", "str", None),
    "service_token": ("SERVICE_TOKEN", "str", None),
    "region_name": ("REGION_NAME", "str", "RegionOne"),
    "keystone_ca_cert": ("KEYSTONE_CA_CERT", "str", "/etc/keystone/ssl/certs/ca.pem"),
    "keystone_signing_cert": ("KEYSTONE_SIGNING_CERT", "str", "/etc/keystone/ssl/certs/signing_cert.pem"),
    "state_db": ("CEPHSTACK_STATE_DB", "str", None),
    "log_level": ("CEPHSTACK_LOG_LEVEL", "str", "INFO"),
    "log_file": ("CEPHSTACK_LOG_FILE", "str", None),
}

_ENV_TO_FIELD = {env: field for field, (env, _, _) in SETTINGS_SCHEMA.items()}


def _read_environment(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for field, (env_name, kind, default) in SETTINGS_SCHEMA.items():
        if kind == "int":
            value = _int_env(environ, env_name, default)
        elif kind == "bool":
            value = _bool_env(environ, env_name, default)
        else:
            value = _str_env(environ, env_name, default)
        if value is not None:
            values[field] = value
    return values


def load_overrides_file(path: str) -> Dict[str, Any]:
    """Load a YAML overrides file keyed by environment names"""
    try:
        with open(path, "r") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping of settings")

    unknown = sorted(key for key in data if key not in _ENV_TO_FIELD)
    if unknown:
        raise ConfigurationError(f"Unknown settings in {path}: {unknown}")
    return data


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Settings:
    """
    Resolve settings from the environment plus optional overrides.

    Args:
        environ: Environment mapping (default: os.environ)
        overrides: Values keyed by environment name, applied last

    Raises:
        ConfigurationError: On unknown override keys or invalid values
    """
    values = _read_environment(os.environ if environ is None else environ)

    for env_name, value in (overrides or {}).items():
        field = _ENV_TO_FIELD.get(env_name)
        if field is None:
            raise ConfigurationError(f"Unknown setting: {env_name}")
        values[field] = value

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}")
