# common/data_models.py

from typing import Optional, Dict, Any, List, Literal
from pydantic import BaseModel, Field, ConfigDict

# --- API Request Models ---

class ConnectRequest(BaseModel):
    """
    Credentials and address of the AMI host to bridge.
    """
    host: str = Field(..., description="AMI host name or IP address.")
    port: int = Field(5038, ge=1, le=65535, description="AMI TCP port.")
    username: str = Field(..., description="AMI manager user (manager.conf).")
    password: str = Field(..., description="AMI manager secret.")


class OriginateRequest(BaseModel):
    """
    Request to place an outbound call leg. The field name callerID matches what browser clients send.
    """
    model_config = ConfigDict(populate_by_name=True)

    channel: str = Field(..., description="Channel to dial first, e.g. 'PJSIP/1000'.")
    extension: str = Field(..., description="Extension to connect the channel to once answered.")
    context: Optional[str] = Field(None, description="Dialplan context; defaults to the configured originate context.")
    caller_id: Optional[str] = Field(None, alias="callerID", description="CallerID string, e.g. 'Sales <1000>'.")

# --- API Response Models ---

class ApiResponse(BaseModel):
    """
    Generic API response model.
    """
    success: bool = Field(..., description="Indicates if the operation was successful.")
    message: Optional[str] = Field(None, description="A message providing more details.")
    error: Optional[str] = Field(None, description="Error text when success is false.")
    error_kind: Optional[str] = Field(None, description="Error taxonomy name, e.g. 'AuthenticationFailed'.")


class StatusResponse(BaseModel):
    connected: bool
    timestamp: str


class OriginateResponse(BaseModel):
    success: bool
    message: str
    details: Dict[str, Optional[str]]


class ChannelsResponse(BaseModel):
    success: bool
    data: Optional[Dict[str, str]] = None


class PJSIPEndpoint(BaseModel):
    objectName: str
    endpoint: str
    status: str
    contact: str


class PJSIPEndpointsResponse(BaseModel):
    success: bool
    data: List[PJSIPEndpoint] = []
    message: Optional[str] = None
    timestamp: Optional[str] = None

# --- Event channel notifications (WebSocket and Redis) ---

class StatusNotification(BaseModel):
    type: Literal["status"] = "status"
    connected: bool


class EventNotification(BaseModel):
    type: Literal["event"] = "event"
    data: Dict[str, Any]
