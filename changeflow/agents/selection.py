"""
Action Selection Manager
========================
Tracks which proposed actions the user intends to apply.

The selection is a set of action keys, (kind, path). Groups and packs are
shortcuts that add or remove many keys at once:
    - toggle(action)       flips one key
    - select/deselect group  adds/removes every action of the group
    - select/deselect pack   adds/removes the union of its groups' actions

Because packs expand to keys, overlapping packs never select the same
change twice. selected_actions() returns actions in report order (flat
actions, then group actions in group order), followed by any toggled
action the report does not know.

Every public mutation, load_report included, calls on_change once it is
done, so the owner can keep the pending action set in step with the
selection.

Unknown group/pack ids are ignored with a warning. An empty selection is
reported as None by require_selection(); callers treat that as a no-op.
"""
import logging
from typing import Callable, Dict, List, Optional

from changeflow.models.action import Action, ActionGroup, AnalyzeReport, FixPack
from changeflow.utils.action_keys import ActionKey

logger = logging.getLogger(__name__)


class SelectionManager:

    def __init__(self, on_change: Optional[Callable[[], None]] = None) -> None:
        self._groups: Dict[str, ActionGroup] = {}
        self._packs: Dict[str, FixPack] = {}
        # Every action the current report proposes, in first-seen order.
        self._catalog: Dict[ActionKey, Action] = {}
        self._selected: Dict[ActionKey, Action] = {}
        self._on_change = on_change

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    def load_report(self, report: AnalyzeReport) -> None:
        """
        Reset the selection for a fresh report.

        Initial selection: all flat actions, every group, and the packs
        listed in recommended_pack_ids.
        """
        self._groups = {g.id: g for g in report.action_groups or []}
        self._packs = {p.id: p for p in report.fix_packs or []}
        self._catalog = {}
        for action in report.actions:
            self._catalog.setdefault(action.key, action)
        for group in self._groups.values():
            for action in group.actions:
                self._catalog.setdefault(action.key, action)

        self._selected = {}
        for action in report.actions:
            self._add(action)
        for group_id in self._groups:
            self._add_group(group_id)
        for pack_id in report.recommended_pack_ids or []:
            self._add_pack(pack_id)
        logger.debug(
            "Selection loaded: %d groups, %d packs, %d actions selected",
            len(self._groups), len(self._packs), len(self._selected),
        )
        self._notify()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def _add(self, action: Action) -> None:
        self._selected.setdefault(action.key, action)

    def _group(self, group_id: str) -> Optional[ActionGroup]:
        group = self._groups.get(group_id)
        if group is None:
            logger.warning("Ignoring unknown action group: %s", group_id)
        return group

    def _add_group(self, group_id: str) -> None:
        group = self._group(group_id)
        for action in group.actions if group else []:
            self._add(action)

    def _pack_actions(self, pack_id: str) -> Optional[List[Action]]:
        pack = self._packs.get(pack_id)
        if pack is None:
            logger.warning("Ignoring unknown fix pack: %s", pack_id)
            return None
        actions: List[Action] = []
        for group_id in pack.group_ids:
            group = self._groups.get(group_id)
            if group is None:
                logger.warning("Fix pack %s references unknown group %s", pack_id, group_id)
                continue
            actions.extend(group.actions)
        return actions

    def _add_pack(self, pack_id: str) -> None:
        for action in self._pack_actions(pack_id) or []:
            self._add(action)

    def toggle(self, action: Action) -> bool:
        """Flip one action; returns True when it is now selected."""
        key = action.key
        if key in self._selected:
            del self._selected[key]
            selected = False
        else:
            self._selected[key] = action
            selected = True
        self._notify()
        return selected

    def select_group(self, group_id: str) -> None:
        self._add_group(group_id)
        self._notify()

    def deselect_group(self, group_id: str) -> None:
        group = self._group(group_id)
        for action in group.actions if group else []:
            self._selected.pop(action.key, None)
        self._notify()

    def select_pack(self, pack_id: str) -> None:
        self._add_pack(pack_id)
        self._notify()

    def deselect_pack(self, pack_id: str) -> None:
        for action in self._pack_actions(pack_id) or []:
            self._selected.pop(action.key, None)
        self._notify()

    def select_all_groups(self) -> None:
        for group_id in self._groups:
            self._add_group(group_id)
        self._notify()

    def clear(self) -> None:
        self._selected = {}
        self._notify()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def is_selected(self, action: Action) -> bool:
        return action.key in self._selected

    def group_state(self, group_id: str) -> str:
        """'all', 'some' or 'none' of the group's actions selected."""
        group = self._groups.get(group_id)
        if group is None or not group.actions:
            return "none"
        hits = sum(1 for a in group.actions if a.key in self._selected)
        if hits == len(group.actions):
            return "all"
        return "some" if hits else "none"

    def selected_actions(self) -> List[Action]:
        ordered = [self._selected[k] for k in self._catalog if k in self._selected]
        extras = [a for k, a in self._selected.items() if k not in self._catalog]
        return ordered + extras

    def require_selection(self) -> Optional[List[Action]]:
        """Selected actions, or None when nothing is selected."""
        actions = self.selected_actions()
        return actions or None
