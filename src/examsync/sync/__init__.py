"""Sync module: remote store client, submission push, merges and orchestration.

Modules:
- transport: Bearer-authenticated HTTP transport and remote errors
- schemas: camelCase wire models
- remote: Typed remote store endpoints
- submission_sync: Push/retry of sync-tracked submissions
- merge_service: Pull-and-merge operations
- engine: SyncEngine (single in-flight cycle)
- connectivity: Reachability polling
"""

__all__ = [
    "transport",
    "schemas",
    "remote",
    "submission_sync",
    "merge_service",
    "engine",
    "connectivity",
]
