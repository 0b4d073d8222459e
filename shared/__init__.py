"""
Shared utilities for cephstack components.

This package contains common functionality used by the orchestrator CLI and
launcher scripts:
- logging_config: One-shot logging setup with optional file output
"""
