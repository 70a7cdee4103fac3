"""Toolchain resolution APIs."""

from .index import ChannelIndex, Snapshot, load_channel_index, parse_channel_index
from .manifest import ChannelSpec, ToolchainManifest, parse_channel_spec, read_toolchain_manifest
from .model import (
    COMPONENT_ROLES,
    DEFAULT_PROFILE,
    ChannelDatePin,
    ManifestPin,
    OverlayOverride,
    ToolchainDescription,
    ToolchainRequest,
    component_role,
)
from .resolver import LegacyToolchainPinWarning, resolve_toolchain, select_request

__all__ = [
    "COMPONENT_ROLES",
    "DEFAULT_PROFILE",
    "ChannelDatePin",
    "ChannelIndex",
    "ChannelSpec",
    "LegacyToolchainPinWarning",
    "ManifestPin",
    "OverlayOverride",
    "Snapshot",
    "ToolchainDescription",
    "ToolchainManifest",
    "ToolchainRequest",
    "component_role",
    "load_channel_index",
    "parse_channel_index",
    "parse_channel_spec",
    "read_toolchain_manifest",
    "resolve_toolchain",
    "select_request",
]
