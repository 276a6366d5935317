"""
possumpaint.schemas
~~~~~~~~~~~~~~~~~~~
Pydantic schemas and models for the API and the persisted world state.
"""
from possumpaint.schemas.responses import ErrorResponse, HealthResponse
from possumpaint.schemas.world_state import Operation, RoomState, WorldState

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "Operation",
    "RoomState",
    "WorldState",
]
