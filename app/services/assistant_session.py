"""One user turn against a stateful OpenAI assistant.

The poll loop is split in two: :func:`step` is a pure transition from the
last observed run status and the elapsed time to the next action, and
:func:`wait_for_run` is the thin driver that performs the sleeping and the
``get_run`` calls. Neither the sleep nor the status request may outlast the
remaining time, so polling ends within ``timeout + poll_interval`` even when
the provider is slow to answer.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.logging_config import get_logger, mask_phone
from app.schemas.assistant import Assistant
from app.services.conversation_service import get_recent_thread_id
from app.services.llm.base import LLMTimeoutError

logger = get_logger("assistant_session")

FAILED_RUN_STATUSES = {"failed", "expired", "cancelled", "incomplete", "requires_action"}

# Floor for the per-request timeout of a status poll issued at the deadline.
MIN_POLL_REQUEST_SECONDS = 0.1


class RunState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class RunAction(str, Enum):
    POLL = "poll"
    FETCH_REPLY = "fetch_reply"
    ABORT = "abort"


@dataclass(frozen=True)
class AssistantReply:
    text: str
    thread_id: str
    assistant_id: str


def run_state(status: str, elapsed: float, timeout: float) -> RunState:
    if status == "completed":
        return RunState.COMPLETED
    if status in FAILED_RUN_STATUSES:
        return RunState.FAILED
    if elapsed >= timeout:
        return RunState.TIMED_OUT
    return RunState.PENDING


def step(status: str, elapsed: float, timeout: float) -> RunAction:
    match run_state(status, elapsed, timeout):
        case RunState.COMPLETED:
            return RunAction.FETCH_REPLY
        case RunState.FAILED | RunState.TIMED_OUT:
            return RunAction.ABORT
        case RunState.PENDING:
            return RunAction.POLL
    raise ValueError(f"Unhandled run status: {status}")


def wait_for_run(
    client,
    thread_id: str,
    run_id: str,
    *,
    timeout: float,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    initial_status: str = "queued",
) -> RunState:
    started = clock()
    status = initial_status
    while True:
        elapsed = clock() - started
        action = step(status, elapsed, timeout)
        if action != RunAction.POLL:
            return run_state(status, elapsed, timeout)
        sleep(min(interval, max(timeout - elapsed, 0.0)))
        remaining = timeout - (clock() - started)
        try:
            status = client.get_run(thread_id, run_id, timeout=max(remaining, MIN_POLL_REQUEST_SECONDS))
        except LLMTimeoutError:
            return RunState.TIMED_OUT


def extract_reply_text(messages: list[dict]) -> Optional[str]:
    """First text block of the newest message when it comes from the assistant."""
    if not messages:
        return None
    message = messages[0]
    if message.get("role") not in (None, "assistant"):
        return None
    for block in message.get("content") or []:
        if block.get("type") == "text":
            value = ((block.get("text") or {}).get("value") or "").strip()
            if value:
                return value
    return None


def resolve_thread(client, db: Session, phone: str, assistant: Assistant) -> str:
    scope = assistant.id if settings.scope_threads_per_assistant else None
    stored = get_recent_thread_id(db, phone, assistant_id=scope)
    if stored:
        try:
            if client.get_thread(stored):
                return stored
            logger.info("Stored thread no longer exists", extra={"context": {"thread_id": stored}})
        except Exception as exc:
            logger.warning(
                "Thread validation failed, creating a new one",
                extra={"context": {"thread_id": stored, "error": str(exc)}},
            )
    return client.create_thread()


def run_assistant_turn(
    client,
    db: Session,
    phone: str,
    assistant: Assistant,
    text: str,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Optional[AssistantReply]:
    """Run one turn; ``None`` on any failure, timeout or empty answer."""
    context = {"phone": mask_phone(phone), "assistant_id": assistant.id}
    try:
        thread_id = resolve_thread(client, db, phone, assistant)
        context["thread_id"] = thread_id
        client.post_message(thread_id, text)
        run_id = client.start_run(
            thread_id,
            assistant.external_id,
            temperature=settings.assistant_temperature,
            top_p=settings.assistant_top_p,
            response_format="text",
        )
        state = wait_for_run(
            client,
            thread_id,
            run_id,
            timeout=settings.assistant_run_timeout_seconds,
            interval=settings.assistant_poll_interval_seconds,
            sleep=sleep,
            clock=clock,
        )
        if state != RunState.COMPLETED:
            logger.warning("Assistant run did not complete", extra={"context": {**context, "state": state.value}})
            return None

        reply = extract_reply_text(client.list_messages(thread_id, limit=1, order="desc"))
    except Exception as exc:
        logger.error("Assistant turn failed", extra={"context": {**context, "error": str(exc)}})
        return None

    if not reply:
        logger.warning("Assistant returned no text", extra={"context": context})
        return None
    return AssistantReply(text=reply, thread_id=thread_id, assistant_id=assistant.id)
