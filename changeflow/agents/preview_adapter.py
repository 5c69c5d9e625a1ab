"""
Preview Adapter
===============
Turns (path, actions) into an advisory diff set and fills the single
pending-preview slot.

preview()               - pure: asks the backend, touches no state
preview_into_pending()  - replaces the pending slot with a new snapshot

Blocked diffs (protected or non-text targets) stay in the preview and the
blocked actions stay in the pending action set; a separate warning is
added to the transcript. The backend refuses them again at apply time.
"""
import logging
from typing import List, Optional

from changeflow.backend.contract import Backend
from changeflow.models.action import Action
from changeflow.models.diff import PendingPreview, PreviewResult
from changeflow.state.workspace_state import Mutation, WorkspaceContext

logger = logging.getLogger(__name__)

MSG_PREVIEW_READY = "Preview ready: {summary}. Review the changes and apply when ready."
MSG_BLOCKED_WARNING = (
    "Warning: {count} change(s) target protected or non-text files. "
    "They will be rejected at apply time."
)
MSG_PREVIEW_FAILED = "Preview failed: {error}"


class PreviewAdapter:

    def __init__(self, backend: Backend, ctx: WorkspaceContext) -> None:
        self.backend = backend
        self.ctx = ctx

    async def preview(self, path: str, actions: List[Action]) -> PreviewResult:
        return await self.backend.preview_actions(path, list(actions))

    async def preview_into_pending(self, path: str, actions: List[Action]) -> Optional[PreviewResult]:
        """
        Preview and store the result as the pending preview.

        Returns None (and changes nothing) for an empty action set or when
        the backend call fails; failures become a transcript entry.
        """
        if not actions:
            logger.debug("Preview skipped: empty action set")
            return None

        snapshot = list(actions)
        with self.ctx.busy():
            try:
                result = await self.preview(path, snapshot)
            except Exception as exc:
                logger.error("Preview failed for %s: %s", path, exc)
                self.ctx.say("system", MSG_PREVIEW_FAILED.format(error=exc))
                return None

        self.ctx.dispatch(
            Mutation.SET_PENDING_PREVIEW,
            preview=PendingPreview(path=path, actions=snapshot, diffs=result.diffs),
        )
        self.ctx.dispatch(Mutation.SET_PENDING_ACTIONS, actions=snapshot)
        self.ctx.say(
            "assistant",
            MSG_PREVIEW_READY.format(summary=result.summary or f"{len(result.diffs)} change(s)"),
            preview=result,
        )
        if result.blocked_count:
            logger.warning("Preview for %s contains %d blocked diff(s)", path, result.blocked_count)
            self.ctx.say("system", MSG_BLOCKED_WARNING.format(count=result.blocked_count))
        return result
