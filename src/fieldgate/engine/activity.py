"""Task activity - comments and the decoded task timeline."""

import logging
from typing import Optional, Sequence

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from fieldgate.config import settings
from fieldgate.db.repositories import EventRepository, TaskRepository
from fieldgate.engine.checkin import validate_files
from fieldgate.engine.errors import Forbidden, NotFound, ValidationError
from fieldgate.engine.ledger import EventLedger, iter_decoded
from fieldgate.integrations.storage import Storage
from fieldgate.models import Actor, Event, EventAction, UploadedFile, task_topic
from fieldgate.models.event import CommentedPayload
from fieldgate.observability.metrics import metrics

logger = logging.getLogger(__name__)


class TimelineEntry(BaseModel):
    event: Event
    payload: dict


class ActivityEngine:
    """Comments on tasks and per-task history."""

    def __init__(self, session: AsyncSession, storage: Optional[Storage] = None):
        self.session = session
        self.storage = storage
        self.tasks = TaskRepository(session)
        self.events = EventRepository(session)
        self.ledger = EventLedger(session)

    async def add_comment(
        self,
        task_id: int,
        actor: Actor,
        comment: str,
        files: Sequence[UploadedFile] = (),
    ) -> Event:
        """Admins comment on any task; workers only on tasks assigned to them."""
        text = (comment or "").strip()
        if not 1 <= len(text) <= settings.max_comment_length:
            raise ValidationError(
                f"Comment must be between 1 and {settings.max_comment_length} characters",
                "INVALID_COMMENT",
            )
        validate_files(files, 0, settings.max_comment_attachments)

        task = await self.tasks.get(task_id)
        if task is None:
            raise NotFound("Task", task_id)
        if not actor.is_admin and not task.is_assigned(actor.id):
            raise Forbidden(f"Worker {actor.id} is not assigned to task {task_id}", "NOT_ASSIGNED")

        refs = []
        if files:
            if self.storage is None:
                raise ValidationError("Attachment upload is not available", "STORAGE_UNAVAILABLE")
            await self.session.commit()
            refs = await self.storage.upload(list(files))

        event = await self.ledger.append(
            task.topic,
            EventAction.COMMENTED,
            actor.id,
            CommentedPayload(comment=text, attachments=refs),
        )
        metrics.inc_counter("comment.count")
        logger.info("Comment on task %s by %s (%d file(s))", task_id, actor.id, len(refs))
        return event

    async def task_timeline(self, task_id: int) -> list[TimelineEntry]:
        """All decodable events of a task, oldest first."""
        task = await self.tasks.get(task_id)
        if task is None:
            raise NotFound("Task", task_id)
        events = await self.events.query(topic=task_topic(task_id))
        return [
            TimelineEntry(event=event, payload=payload.model_dump(mode="json"))
            for event, payload in iter_decoded(events)
        ]
