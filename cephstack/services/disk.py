"""Loopback-mounted backing image for the embedded cluster's data directory."""

import logging
from pathlib import Path

from cephstack.services.admin import CommandRunner

logger = logging.getLogger(__name__)

MOUNT_OPTIONS = "loop,noatime,nodiratime,nobarrier,logbufs=8"


class BackingDisk:
    def __init__(self, runner: CommandRunner, image: Path, mount_point: Path, size: str,
                 mounts_file: Path = Path("/proc/mounts")):
        self.runner = runner
        self.image = Path(image)
        self.mount_point = Path(mount_point)
        self.size = size
        self.mounts_file = Path(mounts_file)

    def is_mounted(self) -> bool:
        try:
            lines = self.mounts_file.read_text().splitlines()
        except FileNotFoundError:
            return False
        target = str(self.mount_point)
        return any(len(fields) > 1 and fields[1] == target for fields in (line.split() for line in lines))

    def ensure(self) -> None:
        """Create, format and mount the image unless already mounted"""
        if self.is_mounted():
            logger.info(f"{self.mount_point} already mounted")
            return

        self.runner.make_dirs(self.image.parent, self.mount_point)
        if not self.image.exists():
            logger.info(f"Creating {self.size} backing image {self.image}")
            self.runner.run(["truncate", "-s", self.size, self.image])
            self.runner.run(["mkfs.xfs", "-f", "-i", "size=2048", self.image])
        self.runner.run(["mount", "-t", "xfs", "-o", MOUNT_OPTIONS, self.image, self.mount_point])

    def destroy(self) -> None:
        """Unmount (if mounted) and delete the image"""
        if self.is_mounted():
            self.runner.run(["umount", self.mount_point])
        self.runner.run(["rm", "-f", self.image])
