import pytest

from cephstack.errors import UnsupportedPlatformError
from cephstack.models import OSFamily, Supervisor, VersionBucket
from cephstack.services.version_gate import (
    CephVersion,
    HostProfile,
    bucket_for,
    check_platform_support,
    check_release_support,
    default_pools,
    detect_host_profile,
    service_account,
)


def test_parse_banner():
    assert CephVersion.parse("ceph version 9.2.0 (bb2ecea240f3a1d525bcb35670cb07bd1f0ca299)") == CephVersion(9, 2)
    assert CephVersion.parse("0.80.11") == CephVersion(0, 80)
    with pytest.raises(ValueError):
        CephVersion.parse("ceph version unknown")


@pytest.mark.parametrize("text, bucket", [
    ("0.80", VersionBucket.PRE_GIANT),
    ("0.86", VersionBucket.PRE_GIANT),
    ("0.87", VersionBucket.GIANT),
    ("9.1", VersionBucket.GIANT),
    ("9.2", VersionBucket.INFERNALIS_PLUS),
    ("10.2", VersionBucket.INFERNALIS_PLUS),
])
def test_bucket_thresholds(text, bucket):
    assert bucket_for(CephVersion.parse(text)) == bucket


def test_firefly_has_legacy_pools_and_no_service_account():
    bucket = bucket_for(CephVersion.parse("0.80"))
    assert default_pools(bucket) == ("rbd", "data", "metadata")
    assert service_account(bucket) is None


def test_infernalis_uses_service_account():
    bucket = bucket_for(CephVersion.parse("9.2"))
    assert default_pools(bucket) == ("rbd",)
    assert service_account(bucket) == "ceph"


def test_release_below_firefly_rejected_unless_forced():
    with pytest.raises(UnsupportedPlatformError):
        check_release_support(CephVersion(0, 72))
    check_release_support(CephVersion(0, 72), force=True)
    check_release_support(CephVersion(0, 80))


def test_unsupported_distro_rejected_unless_forced():
    profile = HostProfile(OSFamily.DEBIAN, "bionic", Supervisor.UPSTART)
    with pytest.raises(UnsupportedPlatformError, match="bionic"):
        check_platform_support(profile)
    check_platform_support(profile, force=True)


def test_detect_ubuntu(tmp_path):
    os_release = tmp_path / "os-release"
    os_release.write_text('NAME="Ubuntu"\nID=ubuntu\nID_LIKE=debian\nVERSION_ID="16.04"\nVERSION_CODENAME=xenial\n')

    profile = detect_host_profile(os_release)
    assert profile == HostProfile(OSFamily.DEBIAN, "xenial", Supervisor.UPSTART)
    assert profile.supported


def test_detect_rhel(tmp_path):
    os_release = tmp_path / "os-release"
    os_release.write_text('ID="rhel"\nID_LIKE="fedora"\nVERSION_ID="7.2"\n')

    profile = detect_host_profile(os_release)
    assert profile.os_family == OSFamily.REDHAT
    assert profile.distro == "rhel7"
    assert profile.supervisor == Supervisor.SYSVINIT


def test_detect_fedora(tmp_path):
    os_release = tmp_path / "os-release"
    os_release.write_text("ID=fedora\nVERSION_ID=23\n")
    assert detect_host_profile(os_release).distro == "f23"


def test_missing_os_release(tmp_path):
    profile = detect_host_profile(tmp_path / "absent")
    assert profile.os_family == OSFamily.UNKNOWN
    assert not profile.supported
