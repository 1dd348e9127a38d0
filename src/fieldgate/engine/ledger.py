"""Event ledger - append-only store of domain events."""

import logging
from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldgate.config import settings
from fieldgate.db.repositories import EventRepository
from fieldgate.engine.errors import UpstreamFailure, ValidationError
from fieldgate.models.enums import EventAction
from fieldgate.models.event import PAYLOAD_TYPES, Event

logger = logging.getLogger(__name__)


def decode_payload(event: Event) -> BaseModel | None:
    """
    Typed payload of ``event``.

    Returns None for actions this build does not know, and for rows whose
    payload no longer matches its model; neither case raises.
    """
    action = event.known_action
    if action is None:
        logger.info("Skipping event %s with unknown action %r", event.event_id, event.action)
        return None
    try:
        return PAYLOAD_TYPES[action].model_validate(event.payload)
    except PydanticValidationError as e:
        logger.warning(
            "Event %s (%s) payload does not decode: %s",
            event.event_id,
            event.action,
            e.errors(include_url=False),
        )
        return None


def iter_decoded(events: Iterable[Event]) -> Iterator[tuple[Event, BaseModel]]:
    """Yield (event, payload) pairs, skipping events that do not decode."""
    for event in events:
        payload = decode_payload(event)
        if payload is not None:
            yield event, payload


class EventLedger:
    """Append and query ledger events within the caller's session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.events = EventRepository(session)

    async def append(
        self,
        topic: str,
        action: EventAction,
        actor_id: str | None,
        payload: BaseModel | dict[str, Any],
        created_at: datetime | None = None,
    ) -> Event:
        """Append one event; only storage errors make this fail."""
        if isinstance(payload, BaseModel):
            data = payload.model_dump(mode="json")
        else:
            data = PAYLOAD_TYPES[action].model_validate(payload).model_dump(mode="json")
        try:
            event = await self.events.append(topic, action, actor_id, data, created_at)
        except SQLAlchemyError as e:
            logger.error("Ledger append failed for %s/%s: %s", topic, action.value, e)
            raise UpstreamFailure("Failed to append event", "LEDGER_WRITE_FAILED") from e
        logger.debug("Appended %s to %s (seq=%s)", action.value, topic, event.seq)
        return event

    async def query(
        self,
        topic: str | None = None,
        action: EventAction | str | None = None,
        actor_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        after_seq: int | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """Ordered by created_at then seq; safe to re-issue."""
        if since is not None and until is not None and until < since:
            raise ValidationError("until must not be before since", "INVALID_RANGE")
        if limit is None:
            limit = settings.default_list_limit
        limit = max(1, min(limit, settings.max_list_limit))
        return await self.events.query(
            topic=topic,
            action=action,
            actor_id=actor_id,
            since=since,
            until=until,
            after_seq=after_seq,
            limit=limit,
        )
