"""
Action Keys
===========
Identity and fingerprint helpers for proposed actions.

Action Key:
    (kind, path)
    Identifies "the same change" across groups and packs, regardless of
    proposed content. Used for selection toggles and pack dedup.

Action Set Fingerprint:
    SHA-256 over the ordered action keys and contents.
    Identifies the exact action array a preview was computed for, so a
    pending preview can be checked against the current selection.
"""
import hashlib
from typing import Iterable, List, Set, Tuple

from changeflow.models.action import Action

ActionKey = Tuple[str, str]


def dedupe_actions(actions: Iterable[Action]) -> List[Action]:
    """
    Drop repeated (kind, path) pairs, keeping the first occurrence.

    Parameters
    ----------
    actions : Iterable[Action]
        Actions in priority order (earlier wins).

    Returns
    -------
    List[Action]
        Actions in first-seen order with unique keys.
    """
    seen: Set[ActionKey] = set()
    out: List[Action] = []
    for action in actions:
        key = action.key
        if key in seen:
            continue
        seen.add(key)
        out.append(action)
    return out


def fingerprint_actions(actions: Iterable[Action]) -> str:
    """
    Deterministic fingerprint of an action array.

    Order matters: the same actions in a different order produce a different
    fingerprint, because the backend applies them in the order given.
    """
    digest = hashlib.sha256()
    for action in actions:
        digest.update(action.kind.encode("utf-8"))
        digest.update(b"\x00")
        digest.update(action.path.encode("utf-8"))
        digest.update(b"\x00")
        digest.update((action.content or "").encode("utf-8"))
        digest.update(b"\x01")
    return digest.hexdigest()[:16]


def same_action_set(left: Iterable[Action], right: Iterable[Action]) -> bool:
    """True when both arrays hold exactly the same actions, order-insensitive."""
    left_list = list(left)
    right_list = list(right)
    if len(left_list) != len(right_list):
        return False
    return sorted(fingerprint_actions([a]) for a in left_list) == sorted(
        fingerprint_actions([a]) for a in right_list
    )
