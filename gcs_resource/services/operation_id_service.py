import contextlib
import contextvars
import uuid
from typing import Iterator
from typing import Optional


operation_id_context: contextvars.ContextVar[str] = contextvars.ContextVar("operation_id", default="no-operation-id")


def generate_operation_id() -> str:
    """Generate a 16-character hex operation ID from UUID4.

    Returns:
        A 16-character lowercase hex string (first 64 bits of UUID4).
        Example: "a1b2c3d4e5f67890"
    """
    return uuid.uuid4().hex[:16]


@contextlib.contextmanager
def operation_scope(operation_id: Optional[str] = None) -> Iterator[str]:
    """Bind an operation ID to the current context for the duration of a resolve or upload.

    An ID already bound by an enclosing scope is reused so nested calls share it.
    """
    current = operation_id_context.get()
    if operation_id is None and current != "no-operation-id":
        yield current
        return

    token = operation_id_context.set(operation_id or generate_operation_id())
    try:
        yield operation_id_context.get()
    finally:
        operation_id_context.reset(token)
