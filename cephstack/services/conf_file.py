"""
Structured cluster configuration file.

The file is assembled in memory (merging into whatever is already on disk)
and written once, so a rerun updates keys in place instead of appending a
second copy of a section.
"""

import configparser
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from cephstack.topology import ClusterConfig

logger = logging.getLogger(__name__)

ACCEPTED_ROLES = "Member, _member_, admin"


def normalize_key(key: str) -> str:
    """'mon_host' and 'mon  host' are the same option"""
    return " ".join(str(key).replace("_", " ").split())


class CephConf:
    """Ordered sections of key = value options"""

    def __init__(self):
        self._sections: Dict[str, Dict[str, str]] = {}

    @classmethod
    def parse(cls, text: str) -> "CephConf":
        parser = configparser.ConfigParser(interpolation=None, strict=False)
        parser.optionxform = str
        parser.read_string(text)
        conf = cls()
        for section in parser.sections():
            conf.merge(section, dict(parser.items(section, raw=True)))
        return conf

    @classmethod
    def load(cls, path: Path) -> "CephConf":
        """Parse an existing file; a missing file gives an empty document"""
        try:
            return cls.parse(Path(path).read_text())
        except FileNotFoundError:
            return cls()

    def merge(self, section: str, values: Mapping[str, Any]) -> None:
        options = self._sections.setdefault(section, {})
        for key, value in values.items():
            options[normalize_key(key)] = str(value)

    def get(self, section: str, key: str) -> Optional[str]:
        return self._sections.get(section, {}).get(normalize_key(key))

    def has_section(self, section: str) -> bool:
        return section in self._sections

    def sections(self) -> list[str]:
        return list(self._sections)

    def render(self) -> str:
        blocks = []
        for section, options in self._sections.items():
            lines = [f"[{section}]"]
            lines.extend(f"{key} = {value}" for key, value in options.items())
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks) + "\n" if blocks else ""


def global_options(config: ClusterConfig) -> Dict[str, Any]:
    return {
        "fsid": config.fsid,
        "mon initial members": config.hostname,
        "mon host": config.service_host,
        "auth cluster required": "cephx",
        "auth service required": "cephx",
        "auth client required": "cephx",
        "filestore xattr use omap": "true",
        "osd crush chooseleaf type": 0,
        "osd journal size": 100,
    }


def gateway_options(
    config: ClusterConfig,
    port: int,
    identity_url: str,
    admin_token: Optional[str],
) -> Dict[str, Any]:
    dest = config.gateway_dir
    options: Dict[str, Any] = {
        "host": config.hostname,
        "keyring": dest / "keyring",
        "rgw socket path": f"/tmp/radosgw-{config.hostname}.sock",
        "log file": f"/var/log/ceph/radosgw-{config.hostname}.log",
        "rgw data": dest,
        "rgw print continue": "false",
        "rgw frontends": f"civetweb port={port}",
        "rgw keystone url": identity_url,
        "rgw keystone accepted roles": ACCEPTED_ROLES,
        "rgw s3 auth use keystone": "true",
        "nss db path": dest / "nss",
    }
    if admin_token:
        options["rgw keystone admin token"] = admin_token
    return options


def shared_fs_client_options(user: str) -> Dict[str, Any]:
    return {
        "client mount uid": 0,
        "client mount gid": 0,
        "log file": f"/var/log/ceph/ceph-client.{user}.log",
        "admin socket": "/var/run/ceph/ceph-$name.$pid.asok",
    }


def write_conf(runner, path: Path, conf: CephConf) -> None:
    logger.info(f"Writing cluster configuration to {path} (sections: {', '.join(conf.sections())})")
    runner.write_file(path, conf.render())


def merge_into_file(runner, path: Path, section: str, values: Mapping[str, Any]) -> CephConf:
    """Load the file, merge one section and write it back"""
    conf = CephConf.load(path)
    conf.merge(section, values)
    write_conf(runner, path, conf)
    return conf

