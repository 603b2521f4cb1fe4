"""Remote browser sessions, snapshots and provisioning."""

from .provider import BrowserbaseClient, BrowserbaseProvisioner, ProvisionedBrowser
from .session import SessionRecord, SessionRegistry
from .snapshot import FrameScope, Snapshot, build_snapshot, parse_ref

__all__ = [
    "BrowserbaseClient",
    "BrowserbaseProvisioner",
    "ProvisionedBrowser",
    "SessionRecord",
    "SessionRegistry",
    "FrameScope",
    "Snapshot",
    "build_snapshot",
    "parse_ref",
]
