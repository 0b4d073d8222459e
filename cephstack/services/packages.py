"""OS package installation for the cluster and client tooling."""

import logging
from typing import List

from cephstack.models import ClusterTopology, OSFamily
from cephstack.services.admin import CommandRunner

logger = logging.getLogger(__name__)

_GATEWAY_PACKAGES = {
    OSFamily.DEBIAN: ["radosgw", "libnss3-tools"],
    OSFamily.REDHAT: ["ceph-radosgw", "nss-tools"],
    OSFamily.SUSE: ["ceph-radosgw", "mozilla-nss-tools"],
}


def packages_for(topology: ClusterTopology, os_family: OSFamily, gateway: bool) -> List[str]:
    """Package names to install; a remote cluster only needs the client"""
    if topology == ClusterTopology.REMOTE:
        packages = ["ceph-common"]
    else:
        packages = ["ceph"]
    if gateway:
        packages.extend(_GATEWAY_PACKAGES.get(os_family, ["radosgw"]))
    return packages


class PackageInstaller:
    def __init__(self, runner: CommandRunner, os_family: OSFamily):
        self.runner = runner
        self.os_family = os_family

    def install(self, packages: List[str]) -> None:
        if not packages:
            return
        logger.info(f"Installing packages: {', '.join(packages)}")
        if self.os_family == OSFamily.DEBIAN:
            self.runner.run(["apt-get", "install", "-y", "--no-install-recommends", *packages])
        elif self.os_family == OSFamily.SUSE:
            self.runner.run(["zypper", "--non-interactive", "install", *packages])
        else:
            self.runner.run(["yum", "install", "-y", *packages])
