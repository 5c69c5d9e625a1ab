"""
Undo/Redo Controller
====================
Reconciles undo/redo availability and issues undo/redo commands.

Availability:
    undo_available = get_undo_redo_state().undo_available
                     OR get_undo_status().available
    redo_available = get_undo_redo_state().redo_available

Undo:
    1. With a known path, try the path-scoped undo_last_tx(path).
    2. If it returns False or raises, fall back to the global undo_last().
       A successful global undo is coarser than what is displayed, so the
       pending preview and the displayed report are cleared as well.

Redo is global only (redo_scope = "global"); the backend offers no
path-scoped redo.
"""
import logging
from typing import Optional

from changeflow.backend.contract import Backend
from changeflow.core.events import Topic
from changeflow.models.apply_result import UndoRedoState, UndoResult
from changeflow.models.outcomes import ErrorCode
from changeflow.services.session_log import log_session_event
from changeflow.state.workspace_state import Mutation, WorkspaceContext

logger = logging.getLogger(__name__)

MSG_UNDO_PATH_OK = "Last change for {path} was undone."
MSG_UNDO_PATH_UNAVAILABLE = "No undoable change for this path. Trying global undo."
MSG_UNDO_GLOBAL_OK = "Last change was undone."
MSG_UNDO_FAILED = "Undo failed: {error}"
MSG_REDO_OK = "Change was redone."
MSG_REDO_FAILED = "Redo failed: {error}"


class UndoRedoController:

    redo_scope = "global"

    def __init__(self, backend: Backend, ctx: WorkspaceContext) -> None:
        self.backend = backend
        self.ctx = ctx

    async def refresh(self) -> UndoRedoState:
        """Re-query both availability signals; errors leave the flags unchanged."""
        try:
            tx_state = await self.backend.get_undo_redo_state()
            status = await self.backend.get_undo_status()
        except Exception as exc:
            logger.warning("Undo/redo state query failed: %s", exc)
            return UndoRedoState(
                undo_available=self.ctx.state["undo_available"],
                redo_available=self.ctx.state["redo_available"],
            )

        merged = UndoRedoState(
            undo_available=tx_state.undo_available or status.available,
            redo_available=tx_state.redo_available,
        )
        self.ctx.dispatch(
            Mutation.SET_UNDO_REDO,
            undo_available=merged.undo_available,
            redo_available=merged.redo_available,
        )
        self.ctx.bus.publish(Topic.UNDO_REDO, merged)
        return merged

    async def undo(self, path: Optional[str] = None) -> UndoResult:
        path = path or self.ctx.state["last_path"]

        if path:
            try:
                if await self.backend.undo_last_tx(path):
                    self.ctx.say("assistant", MSG_UNDO_PATH_OK.format(path=path))
                    await log_session_event(self.backend, path, "undo", "assistant", MSG_UNDO_PATH_OK.format(path=path))
                    await self.refresh()
                    return UndoResult(ok=True)
                self.ctx.say("system", MSG_UNDO_PATH_UNAVAILABLE)
            except Exception as exc:
                logger.warning("Path-scoped undo failed for %s, falling back to global: %s", path, exc)

        result = await self._global_undo()
        if result.ok:
            self.ctx.dispatch(Mutation.CLEAR_PENDING)
            self.ctx.dispatch(Mutation.CLEAR_REPORT)
            self.ctx.say("assistant", MSG_UNDO_GLOBAL_OK)
            if path:
                await log_session_event(self.backend, path, "undo", "assistant", MSG_UNDO_GLOBAL_OK)
        else:
            self.ctx.say("system", MSG_UNDO_FAILED.format(error=result.error or result.error_code))
        await self.refresh()
        return result

    async def _global_undo(self) -> UndoResult:
        try:
            return await self.backend.undo_last()
        except Exception as exc:
            logger.error("Global undo failed: %s", exc)
            return UndoResult(ok=False, error=str(exc))

    async def redo(self) -> UndoResult:
        try:
            result = await self.backend.redo_last()
        except Exception as exc:
            logger.error("Redo failed: %s", exc)
            result = UndoResult(ok=False, error=str(exc))

        if result.ok:
            self.ctx.say("assistant", MSG_REDO_OK)
        else:
            error = result.error or result.error_code or ErrorCode.NOTHING_TO_REDO.value
            self.ctx.say("system", MSG_REDO_FAILED.format(error=error))
        await self.refresh()
        return result
