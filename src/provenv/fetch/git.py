"""Git fetch with immutable resolution, tree verification, and cache support."""

from __future__ import annotations

import shutil
import subprocess
import tempfile
import warnings
from dataclasses import dataclass
from pathlib import Path

from provenv.errors import FetchError, PolicyError, ReproducibilityError, ValidationError
from provenv.lockfile.model import COMMIT_PATTERN
from provenv.policy import MutableRefPolicy, Policy, ensure_network_allowed


class MutableRefWarning(UserWarning):
    """Warning raised when fetching a mutable git ref."""


@dataclass(frozen=True, slots=True)
class GitFetchResult:
    path: Path
    commit: str
    tree_hash: str
    mutable_ref: bool


def fetch_git(
    repo: str,
    *,
    ref: str,
    tree_hash: str | None,
    cache_dir: str | Path,
    policy: Policy | None = None,
    input_name: str | None = None,
) -> GitFetchResult:
    """Fetch git content, verify tree hash, and cache by commit/tree identity."""
    policy = policy or Policy()
    if not ref:
        raise ValidationError("fetch_git() requires a ref.", context={"input": input_name or ""})
    expected_tree_hash = tree_hash or ""
    if not expected_tree_hash and policy.require_integrity:
        raise ValidationError(
            "fetch_git() requires a tree hash when integrity policy is enabled.",
            hint="Re-pin the input with its tree hash or relax policy.require_integrity.",
            context={"input": input_name or "", "repo": repo},
        )

    mutable_ref = not COMMIT_PATTERN.fullmatch(ref)
    _enforce_mutable_ref_policy(
        ref=ref,
        policy=policy.mutable_ref_policy,
        mutable_ref=mutable_ref,
        input_name=input_name,
    )

    cache_root = Path(cache_dir)
    cache_root.mkdir(parents=True, exist_ok=True)

    if not mutable_ref:
        cached = _find_cached_checkout(cache_root, commit=ref, tree_hash=expected_tree_hash)
        if cached is not None:
            tree = cached_tree(cached)
            _verify_cached_checkout(checkout_path=cached, commit=ref, tree_hash=tree)
            return GitFetchResult(path=cached, commit=ref, tree_hash=tree, mutable_ref=False)

    ensure_network_allowed(policy=policy, operation="fetch_git")
    resolved_commit = _resolve_commit(repo=repo, ref=ref)

    temp_root = Path(tempfile.mkdtemp(prefix="provenv-git-", dir=str(cache_root)))
    try:
        _run_git(["clone", "--quiet", repo, str(temp_root)])
        _run_git(["checkout", "--quiet", resolved_commit], cwd=temp_root)
        actual_tree = _run_git(["rev-parse", "HEAD^{tree}"], cwd=temp_root)
        if expected_tree_hash and actual_tree != expected_tree_hash:
            raise ReproducibilityError(
                "Git tree hash mismatch.",
                hint="Pin the expected tree hash to the resolved immutable revision.",
                context={
                    "operation": "fetch_git",
                    "input": input_name or "",
                    "repo": repo,
                    "ref": ref,
                    "commit": resolved_commit,
                    "expected": expected_tree_hash,
                    "actual": actual_tree,
                },
            )
        final_checkout_path = cache_root / f"{resolved_commit}-{actual_tree}"
        if final_checkout_path.exists():
            _verify_cached_checkout(
                checkout_path=final_checkout_path,
                tree_hash=actual_tree,
                commit=resolved_commit,
            )
        else:
            _publish_checkout(
                temp_root,
                final_checkout_path,
                tree_hash=actual_tree,
                commit=resolved_commit,
            )
    finally:
        if temp_root.exists():
            shutil.rmtree(temp_root, ignore_errors=True)

    return GitFetchResult(
        path=final_checkout_path,
        commit=resolved_commit,
        tree_hash=actual_tree,
        mutable_ref=mutable_ref,
    )


def cached_tree(checkout_path: Path) -> str:
    return checkout_path.name.split("-", 1)[1]


def _find_cached_checkout(cache_root: Path, *, commit: str, tree_hash: str) -> Path | None:
    if tree_hash:
        candidate = cache_root / f"{commit}-{tree_hash}"
        return candidate if candidate.is_dir() else None
    matches = sorted(path for path in cache_root.glob(f"{commit}-*") if path.is_dir())
    return matches[0] if matches else None


def _enforce_mutable_ref_policy(
    *,
    ref: str,
    policy: MutableRefPolicy,
    mutable_ref: bool,
    input_name: str | None,
) -> None:
    if not mutable_ref:
        return
    if policy == "allow":
        return
    if policy == "warn":
        warnings.warn(
            f"Mutable git ref `{ref}` was requested; result is not inherently reproducible.",
            MutableRefWarning,
            stacklevel=3,
        )
        return
    if policy == "error":
        raise PolicyError(
            "Mutable git refs are not allowed by policy.",
            hint="Use a full 40-char commit SHA or relax mutable_ref_policy.",
            context={"operation": "fetch_git", "input": input_name or "", "ref": ref},
        )
    raise ValidationError(f"Unsupported mutable_ref_policy value: {policy}")


def _resolve_commit(*, repo: str, ref: str) -> str:
    if COMMIT_PATTERN.fullmatch(ref):
        return ref
    output = _run_git(["ls-remote", repo, ref])
    lines = [line for line in output.splitlines() if line.strip()]
    if not lines:
        raise FetchError(
            "Unable to resolve git ref.",
            hint="Ensure the repository and ref are valid and reachable.",
            context={"operation": "fetch_git", "repo": repo, "ref": ref},
        )
    return lines[0].split()[0]


def _publish_checkout(temp_root: Path, target: Path, *, tree_hash: str, commit: str) -> None:
    # A concurrent fetch of the same revision may publish first.
    try:
        temp_root.rename(target)
    except OSError as exc:
        if not target.is_dir():
            raise FetchError(
                "Could not move the git checkout into the cache.",
                context={"path": str(target), "commit": commit},
            ) from exc
        _verify_cached_checkout(checkout_path=target, tree_hash=tree_hash, commit=commit)


def _verify_cached_checkout(*, checkout_path: Path, tree_hash: str, commit: str) -> None:
    cached_commit = _run_git(["rev-parse", "HEAD"], cwd=checkout_path)
    actual_tree = _run_git(["rev-parse", "HEAD^{tree}"], cwd=checkout_path)
    if cached_commit != commit or actual_tree != tree_hash:
        raise ReproducibilityError(
            "Cached git checkout does not match expected commit/tree.",
            hint="Delete cache entry and refetch immutable source.",
            context={
                "operation": "fetch_git",
                "path": str(checkout_path),
                "expected_commit": commit,
                "actual_commit": cached_commit,
                "expected_tree": tree_hash,
                "actual_tree": actual_tree,
            },
        )


def _run_git(argv: list[str], cwd: Path | None = None) -> str:
    command = ["git", *argv]
    completed = subprocess.run(
        command,
        cwd=cwd,
        check=False,
        text=True,
        capture_output=True,
    )
    if completed.returncode != 0:
        raise FetchError(
            "Git command failed.",
            hint="Inspect repository/ref inputs and git installation.",
            context={
                "operation": "fetch_git",
                "argv": " ".join(command),
                "stderr": completed.stderr.strip(),
            },
        )
    return completed.stdout.strip()
