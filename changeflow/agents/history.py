"""
Session/Request History Manager
===============================
Snapshots and restores whole conversational contexts.

new_request()
    When the transcript is non-empty, freeze {title, messages, last_path,
    last_report} into history, then reset the transient request state.
    Title: first user message cut to HISTORY_TITLE_LIMIT characters, with
    an ellipsis appended when the cut title reaches the limit; "Request"
    when there is no user message.

switch_to(id_or_item)
    Restore the four snapshotted fields verbatim. Pending preview/actions
    are always cleared, even when they target the same path.

remove(id)
    Drop a snapshot; the current request is untouched.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from changeflow.core.config import HISTORY_TITLE_LIMIT
from changeflow.core.constants import ELLIPSIS
from changeflow.models.conversation import ChatMessage, RequestHistoryItem
from changeflow.state.workspace_state import Mutation, WorkspaceContext

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Request"
CURRENT_TITLE = "Current request"


def derive_title(messages: List[ChatMessage], default: str = DEFAULT_TITLE) -> str:
    first_user = next((m.text for m in messages if m.role == "user" and m.text), None)
    if not first_user:
        return default
    title = first_user[:HISTORY_TITLE_LIMIT]
    if len(title) >= HISTORY_TITLE_LIMIT:
        title += ELLIPSIS
    return title


class RequestHistoryManager:

    def __init__(self, ctx: WorkspaceContext) -> None:
        self.ctx = ctx

    @property
    def items(self) -> List[RequestHistoryItem]:
        return list(self.ctx.state["request_history"])

    def get(self, item_id: str) -> Optional[RequestHistoryItem]:
        return next((h for h in self.ctx.state["request_history"] if h.id == item_id), None)

    def new_request(self) -> Optional[RequestHistoryItem]:
        """Archive the current request (if any) and start an empty one."""
        state = self.ctx.state
        item = None
        if state["messages"]:
            item = RequestHistoryItem(
                id=uuid.uuid4().hex,
                title=derive_title(state["messages"]),
                messages=list(state["messages"]),
                last_path=state["last_path"],
                last_report=state["last_report"],
            )
            self.ctx.dispatch(Mutation.PUSH_HISTORY, item=item)
            logger.info("Archived request %s (%s)", item.id, item.title)
        self.ctx.dispatch(Mutation.RESET_REQUEST)
        return item

    def switch_to(self, target: Union[str, RequestHistoryItem]) -> RequestHistoryItem:
        item = self.get(target) if isinstance(target, str) else target
        if item is None:
            raise KeyError(f"Unknown request: {target}")
        self.ctx.dispatch(Mutation.RESTORE_SNAPSHOT, item=item)
        logger.info("Switched to request %s", item.id)
        return item

    def remove(self, item_id: str) -> bool:
        if self.get(item_id) is None:
            return False
        self.ctx.dispatch(Mutation.REMOVE_HISTORY, id=item_id)
        return True

    def display_requests(self) -> List[Dict[str, Any]]:
        """Current request (when it has messages) followed by the archived ones."""
        entries: List[Dict[str, Any]] = []
        messages = self.ctx.state["messages"]
        if messages:
            entries.append({
                "id": "current",
                "title": derive_title(messages, default=CURRENT_TITLE),
                "is_current": True,
            })
        for item in self.ctx.state["request_history"]:
            entries.append({"id": item.id, "title": item.title, "is_current": False})
        return entries
