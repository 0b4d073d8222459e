"""
cephstack command line

Each lifecycle phase is a separate invocation; the run context carried
between them lives in the SQLite state store.

Usage:
    cephstack [--config FILE] <install|configure|init|start|stop|cleanup|status|deploy>

Environment Variables:
    CEPH_* / ENABLE_CEPH_* / REMOTE_CEPH*: cluster and consumer settings
    CEPHSTACK_STATE_DB: Run-state database URL
    CEPHSTACK_LOG_LEVEL: Log level (default: INFO)
    CEPHSTACK_LOG_FILE: Optional log file
"""

import argparse
import json
import logging
import socket
import sys
from typing import Optional, Sequence

from cephstack.config import Settings, load_overrides_file, load_settings
from cephstack.database import RunStateStore, create_session_factory
from cephstack.errors import CephStackError
from cephstack.models import LifecyclePhase
from cephstack.sequencer import PhaseSequencer
from cephstack.services.admin import CephAdmin, CommandRunner
from cephstack.services.catalog import CatalogClient
from cephstack.services.cleanup import CleanupCoordinator
from cephstack.services.disk import BackingDisk
from cephstack.services.hypervisor import HypervisorSecrets
from cephstack.services.packages import PackageInstaller
from cephstack.services.provisioner import ConsumerProvisioner
from cephstack.services.readiness import ReadinessGate
from cephstack.services.supervisor import ProcessSupervisor
from cephstack.services.version_gate import HostProfile, detect_host_profile
from cephstack.topology import build_cluster_config, new_fsid
from shared.logging_config import setup_logging

logger = logging.getLogger(__name__)

COMMANDS = ("install", "configure", "init", "start", "stop", "cleanup", "status", "deploy")


def short_hostname() -> str:
    return socket.gethostname().split(".")[0]


def build_sequencer(
    settings: Settings,
    profile: HostProfile,
    hostname: Optional[str] = None,
    runner: Optional[CommandRunner] = None,
    store: Optional[RunStateStore] = None,
    readiness: Optional[ReadinessGate] = None,
    catalog: Optional[CatalogClient] = None,
) -> PhaseSequencer:
    """
    Wire every component for one invocation.

    The cluster id comes from the stored run; a fresh one is generated before
    the first install and after a cleanup.
    """
    hostname = hostname or short_hostname()
    runner = runner or CommandRunner()
    store = store or RunStateStore(create_session_factory(settings.state_db))

    stored = store.load()
    if stored is None or stored.phase == LifecyclePhase.CLEANED_UP:
        fsid = new_fsid()
    else:
        fsid = stored.fsid

    config = build_cluster_config(settings, fsid, hostname)
    admin = CephAdmin(runner, config.conf_file)
    supervisor = ProcessSupervisor(runner, profile.supervisor, hostname)
    hypervisor = HypervisorSecrets(runner)
    disk = BackingDisk(runner, config.disk_image, config.data_dir, config.disk_size)

    if catalog is None and settings.keystone_url:
        catalog = CatalogClient(settings.keystone_url, settings.service_token)

    provisioner = ConsumerProvisioner(settings, config, admin, runner, supervisor, hypervisor, catalog)
    cleanup = CleanupCoordinator(config, admin, runner, supervisor, disk, hypervisor)

    return PhaseSequencer(
        settings=settings,
        config=config,
        profile=profile,
        runner=runner,
        admin=admin,
        supervisor=supervisor,
        readiness=readiness or ReadinessGate(),
        provisioner=provisioner,
        cleanup=cleanup,
        installer=PackageInstaller(runner, profile.os_family),
        disk=disk,
        store=store,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cephstack", description="Storage cluster lifecycle for a dev cloud")
    parser.add_argument("--config", default=None, help="YAML file of setting overrides (environment names as keys)")
    parser.add_argument("--log-level", default=None, help="Override CEPHSTACK_LOG_LEVEL")
    parser.add_argument("--log-file", default=None, help="Override CEPHSTACK_LOG_FILE")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("install", help="Install packages and create directories")
    subparsers.add_parser("configure", help="Bootstrap the cluster and provision consumers")
    subparsers.add_parser("init", help="Terminate stale daemons and fix ownership")
    subparsers.add_parser("start", help="Signal the supervisor to start all daemons")
    subparsers.add_parser("stop", help="Signal the supervisor to stop all daemons")
    cleanup = subparsers.add_parser("cleanup", help="Tear down what this deployment created")
    cleanup.add_argument(
        "--yes-i-really-really-mean-it",
        dest="confirmed",
        action="store_true",
        help="Confirm pool deletion on a remote cluster",
    )
    subparsers.add_parser("status", help="Show the stored run context")
    subparsers.add_parser("deploy", help="install, configure, init and start in one go")
    return parser


def run_command(sequencer: PhaseSequencer, args: argparse.Namespace) -> int:
    if args.command == "status":
        context = sequencer.current()
        print(json.dumps(context.model_dump(mode="json"), indent=2))
        return 0

    if args.command == "cleanup":
        context = sequencer.cleanup(confirmed=args.confirmed)
    else:
        context = getattr(sequencer, args.command)()
    print(f"{args.command}: cluster {context.fsid} is {context.phase.value}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        overrides = load_overrides_file(args.config) if args.config else None
        settings = load_settings(overrides=overrides)
        setup_logging(
            "cephstack",
            level=args.log_level or settings.log_level,
            log_file=args.log_file or settings.log_file,
            stream=sys.stderr,
        )
        sequencer = build_sequencer(settings, detect_host_profile())
        return run_command(sequencer, args)
    except CephStackError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
