"""
Version compatibility gate and host capability descriptor.

Raw version banners and /etc/os-release are parsed once into enums; the rest
of the orchestrator dispatches on VersionBucket / OSFamily / Supervisor and
never compares strings.

Thresholds:
- 0.87 (giant): the data and metadata default pools no longer exist
- 9.2 (infernalis): daemons run as the dedicated 'ceph' service account
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from cephstack.errors import UnsupportedPlatformError
from cephstack.models import OSFamily, Supervisor, VersionBucket

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"(\d+)\.(\d+)")


@dataclass(frozen=True, order=True)
class CephVersion:
    major: int
    minor: int

    @classmethod
    def parse(cls, text: str) -> "CephVersion":
        """Extract major.minor from a banner such as 'ceph version 9.2.0 (bb2e...)'"""
        match = _VERSION_RE.search(str(text or ""))
        if not match:
            raise ValueError(f"No version number in {text!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


FIREFLY = CephVersion(0, 80)
LEGACY_POOLS_THRESHOLD = CephVersion(0, 87)
OWNERSHIP_THRESHOLD = CephVersion(9, 2)

SERVICE_ACCOUNT = "ceph"
SUPPORTED_DISTROS = ("trusty", "xenial", "f22", "f23", "rhel7")

_DEFAULT_POOLS = {
    VersionBucket.PRE_GIANT: ("rbd", "data", "metadata"),
    VersionBucket.GIANT: ("rbd",),
    VersionBucket.INFERNALIS_PLUS: ("rbd",),
}


def bucket_for(version: CephVersion) -> VersionBucket:
    if version < LEGACY_POOLS_THRESHOLD:
        return VersionBucket.PRE_GIANT
    if version < OWNERSHIP_THRESHOLD:
        return VersionBucket.GIANT
    return VersionBucket.INFERNALIS_PLUS


def default_pools(bucket: VersionBucket) -> Tuple[str, ...]:
    """Pools the cluster creates on its own and which must follow the replica count"""
    return _DEFAULT_POOLS[bucket]


def service_account(bucket: VersionBucket) -> Optional[str]:
    """Account owning the data directory, or None to leave ownership alone"""
    if bucket == VersionBucket.INFERNALIS_PLUS:
        return SERVICE_ACCOUNT
    return None


@dataclass(frozen=True)
class HostProfile:
    os_family: OSFamily
    distro: str
    supervisor: Supervisor

    @property
    def supported(self) -> bool:
        return self.distro in SUPPORTED_DISTROS


def _read_os_release(path: Path) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def detect_host_profile(os_release: Path = Path("/etc/os-release")) -> HostProfile:
    """Build the host descriptor from os-release (missing file -> UNKNOWN)"""
    try:
        info = _read_os_release(Path(os_release))
    except FileNotFoundError:
        logger.warning(f"{os_release} not found, host OS unknown")
        return HostProfile(OSFamily.UNKNOWN, "unknown", Supervisor.SYSVINIT)

    os_id = info.get("ID", "").lower()
    id_like = info.get("ID_LIKE", "").lower().split()
    version_id = info.get("VERSION_ID", "")

    if os_id in ("ubuntu", "debian") or "debian" in id_like:
        family = OSFamily.DEBIAN
        distro = info.get("VERSION_CODENAME") or info.get("UBUNTU_CODENAME") or os_id
    elif os_id == "fedora":
        family = OSFamily.REDHAT
        distro = f"f{version_id}"
    elif os_id in ("rhel", "centos") or "rhel" in id_like or "fedora" in id_like:
        family = OSFamily.REDHAT
        distro = f"rhel{version_id.split('.')[0]}"
    elif "suse" in os_id or "suse" in id_like:
        family = OSFamily.SUSE
        distro = f"{os_id}{version_id}"
    else:
        family = OSFamily.UNKNOWN
        distro = f"{os_id}{version_id}" or "unknown"

    supervisor = Supervisor.UPSTART if family == OSFamily.DEBIAN else Supervisor.SYSVINIT
    return HostProfile(family, distro.lower(), supervisor)


def check_platform_support(profile: HostProfile, force: bool = False) -> None:
    if profile.supported:
        return
    logger.warning(
        f"Distro {profile.distro} does not provide (at least) the Firefly release; "
        f"supported: {', '.join(SUPPORTED_DISTROS)}"
    )
    if not force:
        raise UnsupportedPlatformError(
            f"Unsupported distro {profile.distro}; set FORCE_CEPH_INSTALL=yes to install anyway"
        )


def check_release_support(version: CephVersion, force: bool = False) -> None:
    if version >= FIREFLY:
        return
    logger.warning(f"Cluster release {version} is older than {FIREFLY}")
    if not force:
        raise UnsupportedPlatformError(
            f"Unsupported cluster release {version}; set FORCE_CEPH_INSTALL=yes to continue anyway"
        )
