"""
Phase Sequencer

Drives the deployment lifecycle:

    Uninstalled -> Installed -> Configured -> Initialized -> Running -> Stopped -> CleanedUp

Transitions are forward-only, with one recovery edge: init may run from
Running or Stopped to kill stale daemons before re-entering Initialized.
Every phase may be rerun after a partial failure. Only configure blocks
(on the readiness gate); the rest are plain command sequences.

Each phase receives the stored run context and returns an updated copy,
which is persisted before the next phase can start.
"""

import logging
from typing import Callable, Dict, FrozenSet

from cephstack.config import Settings
from cephstack.errors import InvalidPhaseTransition
from cephstack.models import ClusterTopology, Consumer, LifecyclePhase
from cephstack.database import RunStateStore
from cephstack.services.admin import CephAdmin, CommandRunner
from cephstack.services.cleanup import CleanupCoordinator
from cephstack.services.conf_file import CephConf, global_options, write_conf
from cephstack.services.disk import BackingDisk
from cephstack.services.packages import PackageInstaller, packages_for
from cephstack.services.provisioner import ConsumerProvisioner
from cephstack.services.readiness import ReadinessGate
from cephstack.services.supervisor import ProcessSupervisor
from cephstack.services.version_gate import (
    CephVersion,
    HostProfile,
    bucket_for,
    check_platform_support,
    check_release_support,
    default_pools,
    service_account,
)
from cephstack.topology import ClusterConfig, RunContext

logger = logging.getLogger(__name__)

P = LifecyclePhase

ALLOWED_SOURCES: Dict[str, FrozenSet[LifecyclePhase]] = {
    "install": frozenset({P.UNINSTALLED, P.INSTALLED, P.CLEANED_UP}),
    "configure": frozenset({P.INSTALLED, P.CONFIGURED}),
    "init": frozenset({P.CONFIGURED, P.INITIALIZED, P.RUNNING, P.STOPPED}),
    "start": frozenset({P.INITIALIZED, P.RUNNING}),
    "stop": frozenset({P.RUNNING, P.STOPPED}),
    "cleanup": frozenset(LifecyclePhase),
}

TARGETS: Dict[str, LifecyclePhase] = {
    "install": P.INSTALLED,
    "configure": P.CONFIGURED,
    "init": P.INITIALIZED,
    "start": P.RUNNING,
    "stop": P.STOPPED,
    "cleanup": P.CLEANED_UP,
}

DATA_SUBDIRS = ("bootstrap-mds", "bootstrap-osd", "mds", "mon", "osd", "tmp", "radosgw")


class PhaseSequencer:
    def __init__(
        self,
        settings: Settings,
        config: ClusterConfig,
        profile: HostProfile,
        runner: CommandRunner,
        admin: CephAdmin,
        supervisor: ProcessSupervisor,
        readiness: ReadinessGate,
        provisioner: ConsumerProvisioner,
        cleanup: CleanupCoordinator,
        installer: PackageInstaller,
        disk: BackingDisk,
        store: RunStateStore,
    ):
        self.settings = settings
        self.config = config
        self.profile = profile
        self.runner = runner
        self.admin = admin
        self.supervisor = supervisor
        self.readiness = readiness
        self.provisioner = provisioner
        self.cleanup_coordinator = cleanup
        self.installer = installer
        self.disk = disk
        self.store = store

    # ------------------------------------------------------------------
    # Sequencing
    # ------------------------------------------------------------------

    @property
    def embedded(self) -> bool:
        return self.config.topology == ClusterTopology.EMBEDDED

    @property
    def _mds(self) -> bool:
        return self.config.enabled(Consumer.SHARED_FS)

    @property
    def _local_gateway(self) -> bool:
        return (
            self.config.enabled(Consumer.OBJECT_GATEWAY)
            and self.config.gateway_topology == ClusterTopology.EMBEDDED
        )

    def current(self) -> RunContext:
        stored = self.store.load()
        if stored is None:
            return RunContext(fsid=self.config.fsid)
        return stored

    def _run_phase(self, name: str, handler: Callable[[RunContext], RunContext]) -> RunContext:
        context = self.current()
        if name == "install" and context.phase in (P.UNINSTALLED, P.CLEANED_UP):
            if context.phase == P.CLEANED_UP and context.fsid == self.config.fsid:
                # this wiring still carries the wiped cluster's id
                raise InvalidPhaseTransition(
                    name, f"{context.phase.value} (cluster {context.fsid}); start a new invocation"
                )
            # a new deployment lifecycle starts with a fresh context
            context = RunContext(fsid=self.config.fsid)

        if context.phase not in ALLOWED_SOURCES[name]:
            raise InvalidPhaseTransition(name, context.phase.value)

        logger.info(f"Phase {name}: {context.phase.value} -> {TARGETS[name].value}")
        try:
            context = handler(context)
        except Exception as e:
            logger.error(f"Phase {name} failed: {e}")
            raise

        context = self.store.save(context.evolve(phase=TARGETS[name]))
        logger.info(f"Phase {name} complete (cluster {context.fsid})")
        return context

    def install(self) -> RunContext:
        return self._run_phase("install", self._install)

    def configure(self) -> RunContext:
        return self._run_phase("configure", self._configure)

    def init(self) -> RunContext:
        return self._run_phase("init", self._init)

    def start(self) -> RunContext:
        return self._run_phase("start", self._start)

    def stop(self) -> RunContext:
        return self._run_phase("stop", self._stop)

    def cleanup(self, confirmed: bool = False) -> RunContext:
        return self._run_phase("cleanup", lambda ctx: self.cleanup_coordinator.cleanup(ctx, confirmed))

    def deploy(self) -> RunContext:
        """install -> configure -> init -> start"""
        self.install()
        self.configure()
        self.init()
        return self.start()

    # ------------------------------------------------------------------
    # Phase bodies
    # ------------------------------------------------------------------

    def _install(self, context: RunContext) -> RunContext:
        check_platform_support(self.profile, self.settings.force_install)
        self.installer.install(packages_for(self.config.topology, self.profile.os_family, self._local_gateway))
        self.runner.make_dirs(self.config.conf_dir)
        if self.embedded:
            self.runner.make_dirs(self.config.data_dir)
        return context

    def _configure(self, context: RunContext) -> RunContext:
        client_version = CephVersion.parse(self.admin.client_version())
        check_release_support(client_version, self.settings.force_install)
        run_as = service_account(bucket_for(client_version))
        logger.info(f"Client release {client_version}; data owner: {run_as or 'unchanged'}")
        context = context.evolve(client_version=str(client_version), run_as=run_as)

        if self.embedded:
            context = self._bootstrap_cluster(context)

        return self.provisioner.provision_all(context)

    def _chown_data(self, context: RunContext) -> None:
        if context.run_as:
            self.runner.chown(f"{context.run_as}:{context.run_as}", self.config.data_dir, recursive=True)

    def _bootstrap_cluster(self, context: RunContext) -> RunContext:
        config = self.config
        self.disk.ensure()
        self.runner.make_dirs(*(config.data_dir / sub for sub in DATA_SUBDIRS))

        mon_keyring = config.tmp_dir / f"keyring.mon.{config.hostname}"
        if not mon_keyring.exists():
            self.admin.create_mon_keyring(mon_keyring, self.admin.gen_key())

        conf = CephConf.load(config.conf_file)
        conf.merge("global", global_options(config))
        write_conf(self.runner, config.conf_file, conf)

        self.runner.make_dirs(config.mon_dir)
        if not (config.mon_dir / "keyring").exists():
            self.admin.mon_mkfs(config.hostname, mon_keyring)

        self._chown_data(context)
        self.supervisor.mark(config.mon_dir)
        self.supervisor.start_monitor()

        self.readiness.wait_for(config.admin_keyring)

        daemon_version = CephVersion.parse(self.admin.daemon_version(config.hostname))
        context = context.evolve(daemon_version=str(daemon_version))

        context = self.provisioner.ensure_crush_rule(context)
        for pool_name in default_pools(bucket_for(daemon_version)):
            self.provisioner.apply_pool_policy(pool_name, context)

        context = self._create_osds(context)
        if self._mds:
            self._create_mds(context)
        return context

    def _create_osds(self, context: RunContext) -> RunContext:
        osd_ids = list(self.admin.osd_ls())
        while len(osd_ids) < self.config.replicas:
            osd_id = self.admin.osd_create()
            osd_dir = self.config.osd_dir(osd_id)
            logger.info(f"Creating osd.{osd_id} in {osd_dir}")
            self.runner.make_dirs(osd_dir)
            self.admin.osd_mkfs(osd_id)
            keyring = osd_dir / "keyring"
            self.admin.auth_get_or_create(f"osd.{osd_id}", ["mon", "allow profile osd", "osd", "allow *"], keyring)
            if context.run_as:
                self.runner.chown(f"{context.run_as}:{context.run_as}", keyring)
            self.supervisor.mark(osd_dir)
            osd_ids.append(osd_id)
        return context.evolve(osd_ids=tuple(osd_ids))

    def _create_mds(self, context: RunContext) -> None:
        mds_dir = self.config.mds_dir
        self.runner.make_dirs(mds_dir)
        self.admin.auth_get_or_create(
            f"mds.{self.config.hostname}",
            ["mon", "allow profile mds", "osd", "allow rw", "mds", "allow"],
            mds_dir / "keyring",
        )
        if context.run_as:
            self.runner.chown(f"{context.run_as}:{context.run_as}", mds_dir, recursive=True)
        self.supervisor.mark(mds_dir)

    def _init(self, context: RunContext) -> RunContext:
        if not self.embedded:
            logger.info("Remote cluster: no local daemons to initialize")
            return context
        self.supervisor.kill_stale(mds=self._mds, gateway=self._local_gateway)
        self._chown_data(context)
        return context

    def _start(self, context: RunContext) -> RunContext:
        if not self.embedded:
            logger.info("Remote cluster: nothing to start")
            return context
        self._chown_data(context)
        self.supervisor.start_all(context.osd_ids, mds=self._mds, gateway=self._local_gateway)
        return context

    def _stop(self, context: RunContext) -> RunContext:
        if not self.embedded:
            logger.info("Remote cluster: nothing to stop")
            return context
        self.supervisor.stop_all(mds=self._mds, gateway=self._local_gateway)
        return context
