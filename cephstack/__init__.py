"""
cephstack - Storage Cluster Lifecycle Orchestrator

Provisions, configures and tears down a single Ceph cluster backing the
storage consumers of a development deployment.
Responsibilities:
- Phase sequencing (install -> configure -> init -> start -> stop -> cleanup)
- Per-consumer pool and credential provisioning
- Version-gated command sequences and ownership
- Bounded readiness wait for monitor bootstrap
- Remote or embedded teardown
"""

__version__ = "0.3.0"
