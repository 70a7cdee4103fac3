"""Materialization of pinned inputs into source trees."""

from __future__ import annotations

from pathlib import Path

from provenv.errors import FetchError, ValidationError
from provenv.lockfile.model import PinnedInput
from provenv.policy import Policy

from .git import GitFetchResult, MutableRefWarning, fetch_git


def materialize(
    pin: PinnedInput,
    *,
    cache_dir: str | Path,
    project_root: str | Path,
    policy: Policy | None = None,
) -> Path:
    """Return the source tree for *pin*, fetching it into *cache_dir* if needed."""
    if pin.kind == "local-path":
        path = Path(pin.location)
        if not path.is_absolute():
            path = Path(project_root) / path
        if not path.exists():
            raise FetchError(
                "Pinned local path does not exist.",
                context={"input": pin.name, "path": str(path)},
            )
        return path
    if pin.kind == "repository-revision":
        result = fetch_git(
            pin.location,
            ref=pin.revision or "",
            tree_hash=pin.digest,
            cache_dir=Path(cache_dir) / "git",
            policy=policy,
            input_name=pin.name,
        )
        return result.path
    raise ValidationError(
        f"Pin of kind `{pin.kind}` has no source tree.",
        hint="Only repository-revision and local-path inputs can be materialized.",
        context={"input": pin.name},
    )


__all__ = ["GitFetchResult", "MutableRefWarning", "fetch_git", "materialize"]
