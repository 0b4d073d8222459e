"""
Lifecycle Launcher

Runs one cephstack lifecycle command from a source checkout, without
installing the package.

Usage:
    python scripts/run_lifecycle.py deploy
    python scripts/run_lifecycle.py cleanup --yes-i-really-really-mean-it

Environment Variables:
    REMOTE_CEPH: Use an existing cluster instead of bootstrapping one (default: False)
    CEPH_REPLICAS: Replica count (default: 1)
    CEPHSTACK_STATE_DB: Run-state database URL
"""
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from cephstack.cli import main


if __name__ == "__main__":
    sys.exit(main())
