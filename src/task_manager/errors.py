"""API error type and span recording shared by the route handlers."""

from opentelemetry import trace
from opentelemetry.trace import StatusCode


DESCRIPTION_REQUIRED = "A descrição da tarefa é obrigatória."
CREATE_FAILED = "Erro interno do servidor ao criar tarefa."
LIST_FAILED = "Erro interno do servidor ao buscar tarefas."


class ApiError(Exception):
    """Raised from a route to answer with ``status_code`` and a ``{"message": ...}`` body."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def record_error_on_span(exc: BaseException) -> None:
    span = trace.get_current_span()
    if span.is_recording():
        span.record_exception(exc)
        span.set_attribute("error.type", type(exc).__name__)
        span.set_status(StatusCode.ERROR, str(exc))
