"""
Process supervisor integration.

Daemon directories get a marker file named after the supervisor; the init
scripts scan for it to decide which instances to manage. Start signals are
fire-and-forget: nothing here waits for a daemon to become healthy.
Stop and kill are best-effort since the processes may already be gone.
"""

import logging
from pathlib import Path
from typing import Iterable

from cephstack.models import Supervisor
from cephstack.services.admin import CommandRunner

logger = logging.getLogger(__name__)

GATEWAY_INSTANCE = "radosgw.gateway"


class ProcessSupervisor:
    def __init__(self, runner: CommandRunner, supervisor: Supervisor, hostname: str):
        self.runner = runner
        self.supervisor = supervisor
        self.hostname = hostname

    @property
    def marker_name(self) -> str:
        return self.supervisor.value

    def mark(self, daemon_dir: Path, *extra_markers: str) -> None:
        """Touch the supervisor marker (plus any extra markers) in a daemon directory"""
        names = (self.marker_name,) + extra_markers
        self.runner.touch(*(Path(daemon_dir) / name for name in names))

    def start_monitor(self) -> None:
        logger.info(f"Starting monitor mon.{self.hostname} ({self.supervisor.value})")
        if self.supervisor == Supervisor.UPSTART:
            self.runner.run(["initctl", "emit", "ceph-mon", f"id={self.hostname}"])
        else:
            self.runner.run(["service", "ceph", "start", f"mon.{self.hostname}"])

    def start_all(self, osd_ids: Iterable[int], mds: bool = False, gateway: bool = False) -> None:
        osd_ids = list(osd_ids)
        logger.info(f"Signalling start: mon, osd {osd_ids}, mds={mds}, gateway={gateway}")
        if self.supervisor == Supervisor.UPSTART:
            self.runner.run(["initctl", "emit", "ceph-mon", f"id={self.hostname}"])
            # upstart 'start' exits non-zero when the job is already running
            for osd_id in osd_ids:
                self.runner.run(["start", "ceph-osd", f"id={osd_id}"], check=False)
            if mds:
                self.runner.run(["start", "ceph-mds", f"id={self.hostname}"], check=False)
            if gateway:
                self.runner.run(["start", "radosgw", f"id={GATEWAY_INSTANCE}"], check=False)
        else:
            self.runner.run(["service", "ceph", "start"])
            if gateway:
                self.runner.run(["service", "radosgw", "start"])

    def stop_all(self, mds: bool = False, gateway: bool = False) -> None:
        logger.info("Stopping cluster daemons")
        if self.supervisor == Supervisor.UPSTART:
            jobs = ["ceph-mon-all", "ceph-osd-all"]
            if mds:
                jobs.append("ceph-mds-all")
            if gateway:
                jobs.append("radosgw-all")
            for job in jobs:
                self.runner.run(["stop", job], check=False)
        else:
            self.runner.run(["service", "ceph", "stop"], check=False)
            if gateway:
                self.runner.run(["service", "radosgw", "stop"], check=False)

    @staticmethod
    def _process_names(mds: bool, gateway: bool) -> list[str]:
        names = ["ceph-mon", "ceph-osd"]
        if mds:
            names.append("ceph-mds")
        if gateway:
            names.append("radosgw")
        return names

    def kill_stale(self, mds: bool = False, gateway: bool = False) -> None:
        """Terminate leftovers of a previous (possibly aborted) run"""
        for name in self._process_names(mds, gateway):
            self.runner.run(["pkill", "-f", name], check=False)

    def kill_all(self, mds: bool = False, gateway: bool = False) -> None:
        """Forcefully kill and wait for every local cluster daemon"""
        self.runner.run(["killall", "-w", "-9", *self._process_names(mds, gateway)], check=False)
