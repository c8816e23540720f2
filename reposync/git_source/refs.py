"""Mapping a requested ref/commit onto fetch refspecs and a checkout target."""

from dataclasses import dataclass
from typing import List, TYPE_CHECKING

from ..errors import RefResolutionError

if TYPE_CHECKING:
    from .command import GitCommandManager

HEADS_PREFIX = "refs/heads/"
PULL_PREFIX = "refs/pull/"
TAGS_PREFIX = "refs/tags/"


@dataclass
class CheckoutInfo:
    ref: str
    start_point: str = ""


def _has_prefix(ref: str, prefix: str) -> bool:
    return ref.upper().startswith(prefix.upper())


def get_ref_spec(ref: str, commit: str) -> List[str]:
    """Return the refspecs to fetch for ref and/or commit."""
    if not ref and not commit:
        raise RefResolutionError("Args ref and commit cannot both be empty")

    if commit:
        if _has_prefix(ref, HEADS_PREFIX):
            branch = ref[len(HEADS_PREFIX):]
            return [f"+{commit}:refs/remotes/origin/{branch}"]
        if _has_prefix(ref, PULL_PREFIX):
            branch = ref[len(PULL_PREFIX):]
            return [f"+{commit}:refs/remotes/pull/{branch}"]
        if _has_prefix(ref, TAGS_PREFIX):
            return [f"+{commit}:{ref}"]
        return [commit]

    if not _has_prefix(ref, "refs/"):
        # Unqualified: could be a branch or a tag
        return [
            f"+refs/heads/{ref}*:refs/remotes/origin/{ref}*",
            f"+refs/tags/{ref}*:refs/tags/{ref}*"
        ]
    if _has_prefix(ref, HEADS_PREFIX):
        branch = ref[len(HEADS_PREFIX):]
        return [f"+{ref}:refs/remotes/origin/{branch}"]
    if _has_prefix(ref, PULL_PREFIX):
        branch = ref[len(PULL_PREFIX):]
        return [f"+{ref}:refs/remotes/pull/{branch}"]
    return [f"+{ref}:{ref}"]


def get_checkout_info(git: "GitCommandManager", ref: str, commit: str) -> CheckoutInfo:
    """Return the ref to check out and, for branches, the start point to create it from."""
    if not ref and not commit:
        raise RefResolutionError("Args ref and commit cannot both be empty")

    if not ref:
        return CheckoutInfo(ref=commit)

    if _has_prefix(ref, HEADS_PREFIX):
        branch = ref[len(HEADS_PREFIX):]
        return CheckoutInfo(ref=branch, start_point=f"refs/remotes/origin/{branch}")

    if _has_prefix(ref, PULL_PREFIX):
        branch = ref[len(PULL_PREFIX):]
        return CheckoutInfo(ref=f"refs/remotes/pull/{branch}")

    if _has_prefix(ref, "refs/"):
        return CheckoutInfo(ref=ref)

    if commit:
        # Only the commit was fetched, the unqualified name has no local ref
        return CheckoutInfo(ref=commit)

    if git.branch_exists(True, f"origin/{ref}"):
        return CheckoutInfo(ref=ref, start_point=f"refs/remotes/origin/{ref}")

    if git.tag_exists(ref):
        return CheckoutInfo(ref=f"refs/tags/{ref}")

    raise RefResolutionError(f"A branch or tag with the name '{ref}' could not be found", context={"ref": ref})
