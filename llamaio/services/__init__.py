from llamaio.services import (
    integrity_service,
    query_service,
    task_service,
    user_service,
    validation_service,
)


__all__ = [
    "integrity_service",
    "query_service",
    "task_service",
    "user_service",
    "validation_service",
]
