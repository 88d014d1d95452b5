import logging
import uuid
from typing import List, Optional

from ..schemas import EditCommand, EditingSession, EditOperation, GeneratedLogo, utc_now
from .command_parser import create_variation_prompt
from .workflow import WorkflowCoordinator

logger = logging.getLogger(__name__)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def start_session(logo: GeneratedLogo) -> EditingSession:
    now = utc_now()
    return EditingSession(
        id=_new_id("session"),
        original_logo=logo,
        current_logo=logo,
        created_at=now,
        last_modified=now,
    )


def _operation_from_result(command: EditCommand, before: GeneratedLogo, result) -> EditOperation:
    edited = next((logo for logo in result.logos if logo.status == "completed"), None)
    if result.success and edited is not None:
        return EditOperation(
            id=_new_id("edit"),
            command=command,
            before_image=before.image_url,
            after_image=edited.image_url,
            result_logo=edited,
            status="completed",
        )
    return EditOperation(
        id=_new_id("edit"),
        command=command,
        before_image=before.image_url,
        status="failed",
        error=result.error or "Failed to edit logo",
    )


async def execute_edit(
    session: EditingSession,
    command: EditCommand,
    coordinator: WorkflowCoordinator,
) -> EditOperation:
    """Apply ``command`` to the session's current logo and record the outcome."""
    result = await coordinator.execute_command(session.current_logo, command)
    operation = _operation_from_result(command, session.current_logo, result)

    session.edit_history.append(operation)
    if operation.status == "completed":
        session.current_logo = operation.result_logo
    else:
        logger.warning(f"Edit {operation.id} in session {session.id} failed: {operation.error}")
    session.last_modified = operation.timestamp
    return operation


async def generate_editing_variations(
    session: EditingSession,
    command: EditCommand,
    coordinator: WorkflowCoordinator,
    count: int = 3,
) -> List[EditOperation]:
    """Sibling edits of ``command``; the session is left untouched until one is selected."""
    operations: List[EditOperation] = []
    for i in range(count):
        variant = command.model_copy(update={"prompt": create_variation_prompt(command, i)})
        result = await coordinator.execute_command(session.current_logo, variant)
        operations.append(_operation_from_result(variant, session.current_logo, result))
    return operations


def select_variation(session: EditingSession, operation: EditOperation) -> EditingSession:
    if operation.status != "completed" or operation.result_logo is None:
        raise ValueError(f"Edit operation {operation.id} has no result to select")
    if operation.before_image != session.current_logo.image_url:
        raise ValueError(f"Edit operation {operation.id} was made from a different logo")

    session.edit_history.append(operation)
    session.current_logo = operation.result_logo
    session.last_modified = utc_now()
    return session


def latest_operation(session: EditingSession) -> Optional[EditOperation]:
    return session.edit_history[-1] if session.edit_history else None


def edit_count(session: EditingSession) -> int:
    return sum(1 for op in session.edit_history if op.status == "completed")
