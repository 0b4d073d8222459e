"""
Shared fixtures for the cephstack test-suite.

FakeCluster replaces process execution: filesystem commands act on the
temporary directories, and `ceph` admin commands update an in-memory model of
pools, auth entities, placement rules, OSDs and filesystems.
"""
import json
import os
import re
import shutil
import sys
from pathlib import Path

import pytest

# Add project root to path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from cephstack.config import load_settings
from cephstack.database import RunStateStore, create_session_factory
from cephstack.models import OSFamily, Supervisor
from cephstack.services.admin import CommandResult, CommandRunner
from cephstack.services.readiness import ReadinessGate
from cephstack.services.version_gate import HostProfile

FAKE_KEY = "AQBzZmFrZWtleWZvcnRlc3RzMDAwMDAwMDAwMA=="


class FakeCluster(CommandRunner):
    def __init__(
        self,
        client_version="ceph version 10.2.3 (ecc23778eb545d8dd55e2e4735b53cc93f92e65b)",
        daemon_version="10.2.3",
        admin_keyring=None,
        keyring_appears=True,
        default_pools=("rbd",),
    ):
        super().__init__(use_sudo=False)
        self.client_version = client_version
        self.daemon_version = daemon_version
        self.admin_keyring = Path(admin_keyring) if admin_keyring else None
        self.keyring_appears = keyring_appears
        self.default_pools = default_pools
        self.calls = []
        self.pools = {}
        self.entities = {}
        self.crush_rules = {}
        self.osds = []
        self.filesystems = []
        self.fs_pools = {}
        self.failed_fs = set()
        self.secrets = {}
        self.certificates = set()
        self.fail = set()

    # -- helpers used by tests ------------------------------------------

    def commands(self, prefix):
        """Recorded argv lists starting with `prefix`"""
        prefix = list(prefix)
        return [argv for argv in self.calls if argv[: len(prefix)] == prefix]

    def ceph_calls(self, *prefix):
        """Recorded `ceph -c <conf> ...` calls, without the conf arguments"""
        stripped = [argv[3:] for argv in self.calls if argv[:2] == ["ceph", "-c"]]
        return [args for args in stripped if args[: len(prefix)] == list(prefix)]

    # -- execution ------------------------------------------------------

    def _execute(self, argv, sudo, input):
        self.calls.append(list(argv))
        if tuple(argv[:2]) in self.fail or argv[0] in self.fail:
            return CommandResult(argv, 1, "", "injected failure")

        handler = getattr(self, "_cmd_" + re.sub(r"[^a-z0-9]", "_", argv[0]), None)
        if handler is None:
            return CommandResult(argv, 0)
        result = handler(argv[1:], input)
        if isinstance(result, CommandResult):
            return result
        return CommandResult(argv, 0, result or "")

    def _error(self, message, code=2):
        return CommandResult([], code, "", message)

    def _cmd_mkdir(self, args, input):
        for path in args[1:]:
            Path(path).mkdir(parents=True, exist_ok=True)

    def _cmd_touch(self, args, input):
        for path in args:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            Path(path).touch()

    def _cmd_tee(self, args, input):
        Path(args[0]).parent.mkdir(parents=True, exist_ok=True)
        Path(args[0]).write_text(input or "")
        return input

    def _cmd_truncate(self, args, input):
        Path(args[-1]).touch()

    def _cmd_rm(self, args, input):
        for path in (Path(arg) for arg in args[1:]):
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()

    def _cmd_ceph_authtool(self, args, input):
        if args[0] == "--gen-print-key":
            return FAKE_KEY + "\n"
        Path(args[0]).parent.mkdir(parents=True, exist_ok=True)
        Path(args[0]).write_text("[mon.]\n\tkey = " + FAKE_KEY + "\n")

    def _cmd_ceph_mon(self, args, input):
        hostname = args[args.index("-i") + 1]
        keyring = Path(args[args.index("--keyring") + 1])
        mon_dir = keyring.parent.parent / "mon" / f"ceph-{hostname}"
        mon_dir.mkdir(parents=True, exist_ok=True)
        (mon_dir / "keyring").write_text("[mon.]\n")

    def _monitor_started(self):
        for name in self.default_pools:
            self.pools.setdefault(name, {"pg_num": 64})
        if self.keyring_appears and self.admin_keyring is not None:
            self.admin_keyring.parent.mkdir(parents=True, exist_ok=True)
            self.admin_keyring.write_text("[client.admin]\n\tkey = " + FAKE_KEY + "\n")

    def _cmd_initctl(self, args, input):
        if args[:2] == ["emit", "ceph-mon"]:
            self._monitor_started()

    def _cmd_service(self, args, input):
        if args[:2] == ["ceph", "start"]:
            self._monitor_started()

    def _cmd_openssl(self, args, input):
        return "-----BEGIN PUBLIC KEY-----\nfake\n-----END PUBLIC KEY-----\n"

    def _cmd_certutil(self, args, input):
        nickname = args[args.index("-n") + 1]
        if "-L" in args:
            return None if nickname in self.certificates else self._error("not found", 255)
        self.certificates.add(nickname)

    def _cmd_virsh(self, args, input):
        if args[0] == "secret-list":
            lines = [" UUID                                  Usage", "-" * 60]
            lines += [f" {uuid}  {usage}" for uuid, usage in self.secrets.items()]
            return "\n".join(lines) + "\n"
        if args[0] == "secret-define":
            document = Path(args[args.index("--file") + 1]).read_text()
            uuid = re.search(r"<uuid>(.+)</uuid>", document).group(1)
            name = re.search(r"<name>(.+)</name>", document).group(1)
            self.secrets[uuid] = f"ceph {name}"
        elif args[0] == "secret-undefine":
            self.secrets.pop(args[1], None)

    def _cmd_ceph(self, args, input):
        args = args[2:]  # -c <conf>
        fmt_json = args[-2:] == ["--format", "json"]
        if fmt_json:
            args = args[:-2]

        if args == ["-v"]:
            return self.client_version + "\n"
        if args[0] == "daemon":
            return json.dumps({"version": self.daemon_version})

        if args[:3] == ["osd", "pool", "create"]:
            self.pools.setdefault(args[3], {"pg_num": int(args[4])})
            return None
        if args[:3] == ["osd", "pool", "set"]:
            if args[3] not in self.pools:
                return self._error(f"unrecognized pool '{args[3]}'")
            self.pools[args[3]][args[4]] = args[5]
            return None
        if args[:3] == ["osd", "pool", "delete"]:
            if args[3] not in self.pools:
                return CommandResult([], 0, "", f"pool '{args[3]}' does not exist")
            if any(args[3] in pools for pools in self.fs_pools.values()):
                return self._error(f"pool '{args[3]}' is in use by CephFS", 16)
            del self.pools[args[3]]
            return None

        if args[:2] == ["auth", "get-or-create"]:
            entity = args[2]
            out_index = args.index("-o")
            self.entities.setdefault(entity, args[3:out_index])
            keyring = Path(args[out_index + 1])
            keyring.parent.mkdir(parents=True, exist_ok=True)
            keyring.write_text(f"[{entity}]\n\tkey = {FAKE_KEY}\n")
            return None
        if args[:2] == ["auth", "get-key"]:
            return FAKE_KEY if args[2] in self.entities else self._error("not found")
        if args[:2] == ["auth", "del"]:
            if args[2] not in self.entities:
                return self._error(f"entity {args[2]} does not exist")
            del self.entities[args[2]]
            return None

        if args[:4] == ["osd", "crush", "rule", "create-simple"]:
            self.crush_rules.setdefault(args[4], len(self.crush_rules) + 1)
            return None
        if args[:4] == ["osd", "crush", "rule", "dump"]:
            return json.dumps({"rule_id": self.crush_rules[args[4]], "rule_name": args[4]})

        if args[:2] == ["fs", "ls"]:
            return json.dumps([{"name": name} for name in self.filesystems])
        if args[:2] == ["fs", "new"]:
            self.filesystems.append(args[2])
            self.fs_pools[args[2]] = (args[3], args[4])
            return None
        if args[:2] == ["fs", "fail"]:
            self.failed_fs.add(args[2])
            return None
        if args[:2] == ["fs", "rm"]:
            if args[2] not in self.failed_fs:
                return self._error("all MDS daemons must be inactive before removing filesystem", 22)
            self.filesystems.remove(args[2])
            del self.fs_pools[args[2]]
            self.failed_fs.discard(args[2])
            return None

        if args[:2] == ["osd", "ls"]:
            return json.dumps(self.osds)
        if args[:2] == ["osd", "create"]:
            osd_id = len(self.osds)
            self.osds.append(osd_id)
            return f"{osd_id}\n"

        return None


def make_settings(tmp_path, **env):
    """Settings rooted in tmp_path; keyword arguments are environment names"""
    environ = {
        "CEPH_DATA_DIR": str(tmp_path / "lib" / "ceph"),
        "CEPH_CONF_DIR": str(tmp_path / "etc" / "ceph"),
        "STACK_USER": "stack",
        "KEYSTONE_CA_CERT": str(tmp_path / "ca.pem"),
        "KEYSTONE_SIGNING_CERT": str(tmp_path / "signing_cert.pem"),
    }
    environ.update({key: str(value) for key, value in env.items()})
    return load_settings(environ=environ)


@pytest.fixture
def settings_factory(tmp_path):
    def factory(**env):
        return make_settings(tmp_path, **env)
    return factory


@pytest.fixture
def fake_cluster(tmp_path):
    return FakeCluster(admin_keyring=tmp_path / "etc" / "ceph" / "ceph.client.admin.keyring")


@pytest.fixture
def store(tmp_path):
    return RunStateStore(create_session_factory(f"sqlite:///{tmp_path / 'state' / 'state.db'}"))


@pytest.fixture
def upstart_profile():
    return HostProfile(OSFamily.DEBIAN, "xenial", Supervisor.UPSTART)


@pytest.fixture
def sysvinit_profile():
    return HostProfile(OSFamily.REDHAT, "rhel7", Supervisor.SYSVINIT)


@pytest.fixture
def fast_gate():
    return ReadinessGate(interval_seconds=0)
