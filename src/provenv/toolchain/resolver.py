"""Toolchain selection and exact snapshot resolution.

Three request forms exist: an explicit toolchain file, a channel plus date
declared by the project, and a toolchain contributed by an overlay.
:func:`select_request` picks exactly one of them by fixed priority, and
:func:`resolve_toolchain` turns it into a :class:`ToolchainDescription`.

Resolution never approximates: a date with no published snapshot is an
error, not a cue to use the closest one.
"""

from __future__ import annotations

import bisect
import warnings
from pathlib import Path

from provenv.errors import (
    ComponentUnavailableError,
    ToolchainUnavailableError,
    ValidationError,
)
from provenv.observability import StructuredLogger
from provenv.toolchain.index import ChannelIndex, Snapshot
from provenv.toolchain.manifest import (
    CHANNELS,
    ChannelSpec,
    read_toolchain_manifest,
    validate_date,
)
from provenv.toolchain.model import (
    DEFAULT_PROFILE,
    ChannelDatePin,
    ManifestPin,
    OverlayOverride,
    ToolchainDescription,
    ToolchainRequest,
    component_role,
)


class LegacyToolchainPinWarning(UserWarning):
    """Warning raised when a toolchain is chosen by a deprecated strategy."""


def select_request(
    *,
    manifest: str | Path | None = None,
    channel_date: ChannelDatePin | None = None,
    override: OverlayOverride | None = None,
    logger: StructuredLogger | None = None,
) -> ToolchainRequest:
    """Pick the single toolchain request to resolve.

    Priority is manifest, then channel/date, then overlay override.
    """
    declared = [item for item in (manifest, channel_date, override) if item is not None]
    if not declared:
        raise ValidationError(
            "No toolchain request was declared.",
            hint="Add a toolchain manifest or a [toolchain] channel and date.",
        )

    selected: ToolchainRequest
    if manifest is not None:
        selected = ManifestPin(path=Path(manifest))
    elif channel_date is not None:
        selected = channel_date
        if override is not None:
            warnings.warn(
                "Toolchain selected by channel/date while an overlay override is also "
                "declared; prefer a toolchain manifest.",
                LegacyToolchainPinWarning,
                stacklevel=2,
            )
    elif override is not None:
        selected = override
        warnings.warn(
            f"Toolchain supplied by overlay `{override.overlay}` is deprecated; "
            "pin it with a toolchain manifest.",
            LegacyToolchainPinWarning,
            stacklevel=2,
        )

    if logger is not None:
        logger.log(
            operation="select_toolchain",
            message=f"selected {type(selected).__name__}",
            extra={"declared": len(declared), "ignored": len(declared) - 1},
        )
    return selected


def resolve_toolchain(
    request: ToolchainRequest,
    *,
    index: ChannelIndex,
    host_triple: str,
    logger: StructuredLogger | None = None,
) -> ToolchainDescription:
    if isinstance(request, ManifestPin):
        manifest = read_toolchain_manifest(request.path)
        spec = manifest.channel
        extensions = manifest.components
        targets = manifest.targets
        source = str(request.path)
    elif isinstance(request, (ChannelDatePin, OverlayOverride)):
        spec = _channel_spec(request.channel, request.date)
        extensions = request.components
        targets = request.targets
        if isinstance(request, OverlayOverride):
            source = f"overlay:{request.overlay}"
        else:
            source = "channel-date"
    else:
        raise ValidationError(f"Unsupported toolchain request: {request!r}")

    snapshot = _select_snapshot(spec, index)
    label = f"{snapshot.channel}-{snapshot.date}"
    components = _select_components(snapshot, extensions, label=label)
    target = _select_target(snapshot, targets, host_triple=host_triple, label=label)

    compilers = [name for name in components if component_role(name) == "compiler"]
    if len(compilers) != 1:
        raise ValidationError(
            "Toolchain must select exactly one compiler component.",
            context={"toolchain": label, "compilers": ", ".join(compilers)},
        )

    description = ToolchainDescription(
        channel=snapshot.channel,
        date=snapshot.date if spec.version is None else None,
        version=snapshot.version,
        components=components,
        target=target,
        root=snapshot.root,
    )
    if logger is not None:
        logger.log(
            operation="resolve_toolchain",
            message=f"resolved {description.identifier}",
            input=source,
            extra={"components": list(components), "target": target},
        )
    return description


def _channel_spec(channel: str, date: str | None) -> ChannelSpec:
    if channel not in CHANNELS:
        raise ValidationError(
            f"Unknown toolchain channel `{channel}`.",
            hint=f"Supported channels: {', '.join(CHANNELS)}.",
            context={"channel": channel},
        )
    return ChannelSpec(channel=channel, date=validate_date(date) if date else None)


def _select_snapshot(spec: ChannelSpec, index: ChannelIndex) -> Snapshot:
    if spec.version is not None:
        snapshot = index.lookup_version(spec.version)
        if snapshot is None:
            raise ToolchainUnavailableError(
                f"No stable snapshot for release {spec.version}.",
                context={"channel": "stable", "version": spec.version},
            )
        return snapshot

    if spec.date is None:
        raise ToolchainUnavailableError(
            f"Channel `{spec.channel}` was requested without a date.",
            hint="Pin an exact snapshot date; the latest snapshot is not reproducible.",
            context={"channel": spec.channel},
        )

    snapshot = index.lookup(spec.channel, spec.date)
    if snapshot is None:
        raise ToolchainUnavailableError(
            f"No `{spec.channel}` snapshot was published on {spec.date}.",
            hint=_nearby_hint(index.dates_for(spec.channel), spec.date),
            context={"channel": spec.channel, "date": spec.date},
        )
    return snapshot


def _nearby_hint(dates: tuple[str, ...], requested: str) -> str:
    if not dates:
        return "The channel index has no snapshots for this channel."
    position = bisect.bisect_left(dates, requested)
    nearby = dates[max(position - 1, 0) : position + 1]
    return f"Pin one of the published dates explicitly, e.g. {', '.join(nearby)}."


def _select_components(
    snapshot: Snapshot,
    extensions: tuple[str, ...],
    *,
    label: str,
) -> tuple[str, ...]:
    selected: list[str] = []
    for component in (*DEFAULT_PROFILE, *extensions):
        if component in selected:
            continue
        if component not in snapshot.components:
            raise ComponentUnavailableError(
                component,
                toolchain=label,
                available=snapshot.components,
            )
        selected.append(component)
    return tuple(selected)


def _select_target(
    snapshot: Snapshot,
    targets: tuple[str, ...],
    *,
    host_triple: str,
    label: str,
) -> str:
    wanted = targets or (host_triple,)
    for target in wanted:
        if snapshot.targets and target not in snapshot.targets:
            raise ComponentUnavailableError(
                f"rust-std-{target}",
                toolchain=label,
                available=tuple(f"rust-std-{t}" for t in snapshot.targets),
            )
    return wanted[0]
