from src.services import (
    points_service,
    session_service,
)


__all__ = [
    "points_service",
    "session_service",
]
