from typing import Dict, Any, Optional, List
from datetime import datetime
import structlog

from application.websocket.connection_manager import ConnectionManager
from application.websocket.schema.events import (
    MarkdownEvent, MarkdownData, ComponentEvent, ComponentPayload,
    ComponentType, ProgressData, RenderData
)
from domain.errors import TutorError
from domain.models.chat_state import Message
from domain.models.ui_fragments import BaseFragment, BotMessageFragment
from domain.orchestration.core.dispatch_engine import TurnHandle
from domain.streaming.streamable import StreamableValue

logger = structlog.get_logger(__name__)

TURN_FINISH_STATUS = "_turn_finish"
FLUSH_INTERVAL_SECONDS = 0.1
FLUSH_CHARS = 50


class StreamingHandler:
    """Streams a turn's render handle to WebSocket clients"""

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        self.connection_manager = connection_manager or ConnectionManager()

    async def stream_turn(self, session_id: str, handle: TurnHandle) -> List[Message]:
        """Forward every fragment of the turn, then report its outcome"""

        try:
            async for snapshot in handle.display.updates():
                if snapshot.error is not None:
                    break

                fragment = snapshot.value
                await self.send_render(session_id, handle.id, fragment, done=snapshot.done)

                if isinstance(fragment, BotMessageFragment) and fragment.stream is not None:
                    await self._stream_text(session_id, handle.id, fragment.stream)

            try:
                return await handle.wait()
            except TutorError as e:
                logger.warning("Turn failed", session_id=session_id, turn_id=handle.id, error=str(e))
                await self.connection_manager.send_error(session_id, str(e), error_code=type(e).__name__)
                return []

        finally:
            await self.send_turn_complete(session_id, handle.id)

    async def _stream_text(self, session_id: str, turn_id: str, stream: StreamableValue):
        """Send buffered text every 100ms or 50 chars, and once more when done"""

        pending = ""
        last_send = datetime.utcnow()

        async for snapshot in stream.updates():
            if snapshot.error is not None:
                return

            pending += snapshot.delta or ""
            now = datetime.utcnow()
            time_diff = (now - last_send).total_seconds()

            if snapshot.done or time_diff > FLUSH_INTERVAL_SECONDS or len(pending) > FLUSH_CHARS:
                await self.send_markdown(
                    session_id,
                    MarkdownData(turn_id=turn_id, content=snapshot.value, delta=pending, done=snapshot.done)
                )
                pending = ""
                last_send = now

    async def send_render(self, session_id: str, turn_id: str, fragment: BaseFragment, done: bool = False):
        """Send the current fragment of a render handle"""

        await self.connection_manager.send_event(
            session_id,
            ComponentEvent(
                payload=ComponentPayload(
                    component=ComponentType.RENDER,
                    data=RenderData(turn_id=turn_id, fragment=fragment_payload(fragment), done=done)
                )
            )
        )

    async def send_progress(self, session_id: str, status: str, turn_id: Optional[str] = None):
        """Send progress update to client"""

        await self.connection_manager.send_event(
            session_id,
            ComponentEvent(
                payload=ComponentPayload(
                    component=ComponentType.PROGRESS,
                    data=ProgressData(status=status, turn_id=turn_id)
                )
            )
        )

    async def send_markdown(self, session_id: str, data: MarkdownData):
        """Send markdown content to client"""

        await self.connection_manager.send_event(session_id, MarkdownEvent(payload=data))

    async def send_turn_complete(self, session_id: str, turn_id: str):
        """Send turn completion signal"""

        await self.send_progress(session_id, TURN_FINISH_STATUS, turn_id=turn_id)


def fragment_payload(fragment: BaseFragment) -> Dict[str, Any]:
    """Serializable form of a fragment, with live text resolved"""

    data = fragment.model_dump(mode="json")
    if isinstance(fragment, BotMessageFragment):
        data["content"] = fragment.text
    return data
