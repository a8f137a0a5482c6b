"""Client connection state and identity models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ClientConnectionState(str, Enum):
    """Lifecycle of one browser client connection."""

    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"


class Identity(BaseModel):
    """Authenticated user behind a client connection."""

    id: str = Field(..., description="User identifier")
    role: Optional[str] = Field(default=None, description="User role, e.g. 'USER' or 'ADMIN'")
