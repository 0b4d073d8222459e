"""
Privileged command execution and the cluster administrative interface.

CommandRunner is the only place that spawns processes. CephAdmin wraps the
`ceph` CLI (always with an explicit -c <conf>) plus the daemon bootstrap
tools. Any non-zero exit from a checked call raises AdminCommandError; there
is no distinction between transient and permanent causes.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from cephstack.errors import AdminCommandError

logger = logging.getLogger(__name__)

PathLike = str | Path


@dataclass
class CommandResult:
    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs argv lists, optionally through sudo; never through a shell"""

    def __init__(self, use_sudo: Optional[bool] = None):
        self.use_sudo = (os.geteuid() != 0) if use_sudo is None else use_sudo

    def run(
        self,
        argv: Sequence[Any],
        sudo: bool = True,
        check: bool = True,
        input: Optional[str] = None,
    ) -> CommandResult:
        """
        Execute a command.

        Args:
            argv: Command and arguments
            sudo: Run with elevated privilege
            check: Raise AdminCommandError on non-zero exit (False = best-effort)
            input: Text passed on stdin

        Returns:
            CommandResult with captured output
        """
        argv = [str(arg) for arg in argv]
        logger.debug(f"Running: {' '.join(argv)}")

        result = self._execute(argv, sudo=sudo, input=input)

        if not result.ok:
            if check:
                logger.error(f"Command failed (exit {result.returncode}): {' '.join(argv)}")
                raise AdminCommandError(argv, result.returncode, result.stderr)
            logger.warning(f"Ignoring failure (exit {result.returncode}): {' '.join(argv)}")

        return result

    def _execute(self, argv: list[str], sudo: bool, input: Optional[str]) -> CommandResult:
        full_argv = ["sudo"] + argv if sudo and self.use_sudo else argv
        try:
            proc = subprocess.run(full_argv, input=input, capture_output=True, text=True)
        except FileNotFoundError as e:
            return CommandResult(argv, 127, "", str(e))
        return CommandResult(argv, proc.returncode, proc.stdout, proc.stderr)

    # Privileged filesystem helpers

    def make_dirs(self, *paths: PathLike) -> None:
        self.run(["mkdir", "-p", *paths])

    def touch(self, *paths: PathLike) -> None:
        self.run(["touch", *paths])

    def write_file(self, path: PathLike, content: str) -> None:
        self.run(["tee", path], input=content)

    def chown(self, owner: str, *paths: PathLike, recursive: bool = False) -> None:
        argv = ["chown"] + (["-R"] if recursive else []) + [owner, *paths]
        self.run(argv)

    def remove_tree(self, *paths: PathLike, check: bool = True) -> None:
        self.run(["rm", "-rf", *paths], check=check)


class CephAdmin:
    """Administrative command interface of the storage cluster"""

    def __init__(self, runner: CommandRunner, conf_file: PathLike):
        self.runner = runner
        self.conf_file = str(conf_file)

    def _ceph(self, *args: Any, check: bool = True) -> CommandResult:
        return self.runner.run(["ceph", "-c", self.conf_file, *args], check=check)

    def _ceph_json(self, *args: Any) -> Any:
        output = self._ceph(*args, "--format", "json").stdout
        try:
            return json.loads(output or "null")
        except json.JSONDecodeError as e:
            raise AdminCommandError(["ceph", *map(str, args)], 0, f"unparseable JSON output: {e}")

    # Versions

    def client_version(self) -> str:
        """Raw version banner of the installed administrative client"""
        return self._ceph("-v").stdout.strip()

    def daemon_version(self, hostname: str) -> str:
        """Version reported by the running monitor over its admin socket"""
        output = self._ceph("daemon", f"mon.{hostname}", "version").stdout
        try:
            return str(json.loads(output)["version"])
        except (json.JSONDecodeError, KeyError, TypeError):
            return output.strip()

    # Pools

    def pool_create(self, name: str, pg_num: int) -> None:
        self._ceph("osd", "pool", "create", name, pg_num, pg_num)

    def pool_set(self, name: str, key: str, value: Any) -> None:
        self._ceph("osd", "pool", "set", name, key, value)

    def pool_delete(self, name: str, check: bool = True) -> CommandResult:
        return self._ceph("osd", "pool", "delete", name, name, "--yes-i-really-really-mean-it", check=check)

    # Authentication

    def auth_get_or_create(self, entity: str, cap_args: Iterable[str], keyring_path: PathLike) -> None:
        self._ceph("auth", "get-or-create", entity, *cap_args, "-o", keyring_path)

    def auth_get_key(self, entity: str) -> str:
        return self._ceph("auth", "get-key", entity).stdout.strip()

    def auth_del(self, entity: str, check: bool = True) -> CommandResult:
        return self._ceph("auth", "del", entity, check=check)

    # Placement rules

    def crush_rule_create_simple(self, name: str, root: str = "default", failure_domain: str = "osd") -> None:
        self._ceph("osd", "crush", "rule", "create-simple", name, root, failure_domain)

    def crush_rule_dump(self, name: str) -> dict:
        dump = self._ceph_json("osd", "crush", "rule", "dump", name)
        return dump if isinstance(dump, dict) else {}

    # Filesystem namespace

    def fs_names(self) -> list[str]:
        listing = self._ceph_json("fs", "ls") or []
        return [entry.get("name") for entry in listing if isinstance(entry, dict)]

    def fs_new(self, name: str, metadata_pool: str, data_pool: str) -> None:
        self._ceph("fs", "new", name, metadata_pool, data_pool)

    def fs_rm(self, name: str) -> None:
        """Take the filesystem offline and remove it, leaving its pools"""
        self._ceph("fs", "fail", name)
        self._ceph("fs", "rm", name, "--yes-i-really-mean-it")

    def mds_allow_new_snaps(self) -> None:
        self._ceph("mds", "set", "allow_new_snaps", "true", "--yes-i-really-mean-it")

    # Object storage daemons

    def osd_ls(self) -> list[int]:
        return [int(osd_id) for osd_id in (self._ceph_json("osd", "ls") or [])]

    def osd_create(self) -> int:
        return int(self._ceph("osd", "create").stdout.strip())

    # Daemon bootstrap tools

    def gen_key(self) -> str:
        return self.runner.run(["ceph-authtool", "--gen-print-key"]).stdout.strip()

    def create_mon_keyring(self, path: PathLike, key: str) -> None:
        self.runner.run([
            "ceph-authtool", path, "--create-keyring", "--name=mon.",
            f"--add-key={key}", "--cap", "mon", "allow *",
        ])

    def mon_mkfs(self, hostname: str, keyring: PathLike) -> None:
        self.runner.run(["ceph-mon", "-c", self.conf_file, "--mkfs", "-i", hostname, "--keyring", keyring])

    def osd_mkfs(self, osd_id: int) -> None:
        self.runner.run(["ceph-osd", "-c", self.conf_file, "-i", osd_id, "--mkfs"])
