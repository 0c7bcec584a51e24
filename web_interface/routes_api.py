from datetime import datetime, timezone
from fastapi import APIRouter, Depends
from fastapi.requests import HTTPConnection
from fastapi.responses import JSONResponse

from ami_bridge import AmiBridge, AmiConnectionConfig
from common.data_models import (
    ApiResponse,
    ChannelsResponse,
    ConnectRequest,
    OriginateRequest,
    OriginateResponse,
    PJSIPEndpointsResponse,
    StatusResponse,
)
from common.logger_setup import setup_logger

logger = setup_logger(__name__) # Sets up a logger specific to this routes_api module
router = APIRouter()


def get_ami_bridge(connection: HTTPConnection) -> AmiBridge:
    """The process-wide bridge created by the application lifespan."""
    return connection.app.state.ami_bridge


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra})


NOT_CONNECTED_ERROR = "Not connected to AMI"


@router.post("/connect", response_model=ApiResponse, response_model_exclude_none=True)
async def connect(request_data: ConnectRequest, bridge: AmiBridge = Depends(get_ami_bridge)):
    """
    Connects the bridge to an AMI host, replacing any existing connection.
    """
    logger.info(f"[API] Connecting to AMI: {request_data.host}:{request_data.port} with user {request_data.username}")
    try:
        result = await bridge.connect(AmiConnectionConfig(
            host=request_data.host,
            port=request_data.port,
            username=request_data.username,
            secret=request_data.password,
        ))
    except Exception as e:
        logger.error(f"[API] Unexpected error connecting to AMI: {e}", exc_info=True)
        return _error(500, f"An internal server error occurred: {str(e)}")

    if not result["success"]:
        return _error(500, result["error"], error_kind=result.get("error_kind"))
    return result


@router.post("/disconnect", response_model=ApiResponse, response_model_exclude_none=True)
async def disconnect(bridge: AmiBridge = Depends(get_ami_bridge)):
    logger.info("[API] Disconnecting AMI bridge")
    try:
        return await bridge.disconnect()
    except Exception as e:
        logger.error(f"[API] Unexpected error disconnecting from AMI: {e}", exc_info=True)
        return _error(500, f"An internal server error occurred: {str(e)}")


@router.get("/status", response_model=StatusResponse)
async def status(bridge: AmiBridge = Depends(get_ami_bridge)):
    current = bridge.status()
    logger.debug(f"[API] Status check: {current}")
    return current


@router.post("/originate", response_model=OriginateResponse)
async def originate(request_data: OriginateRequest, bridge: AmiBridge = Depends(get_ami_bridge)):
    """
    Places an outbound call leg. A failed origination is reported as success=false, not as an error status.
    """
    if not bridge.is_connected:
        return _error(400, NOT_CONNECTED_ERROR)
    if not request_data.channel.strip() or not request_data.extension.strip():
        return _error(400, "Channel and extension are required")

    logger.info(f"[API] Originating call: {request_data.channel} -> {request_data.extension}")
    try:
        success = await bridge.originate(
            request_data.channel,
            request_data.extension,
            context=request_data.context,
            caller_id=request_data.caller_id,
        )
    except Exception as e:
        logger.error(f"[API] Originate call error: {e}", exc_info=True)
        return _error(500, f"An internal server error occurred: {str(e)}")

    return {
        "success": success,
        "message": "Call originated successfully" if success else "Failed to originate call",
        "details": {
            "channel": request_data.channel,
            "extension": request_data.extension,
            "context": request_data.context,
        },
    }


@router.get("/channels", response_model=ChannelsResponse)
async def channels(bridge: AmiBridge = Depends(get_ami_bridge)):
    if not bridge.is_connected:
        return _error(400, NOT_CONNECTED_ERROR)
    try:
        data = await bridge.active_channels()
    except Exception as e:
        logger.error(f"[API] Get channels error: {e}", exc_info=True)
        return _error(500, f"An internal server error occurred: {str(e)}")
    if data is None:
        return _error(500, "Failed to query active channels")
    return {"success": True, "data": data}


@router.get("/pjsip-endpoints", response_model=PJSIPEndpointsResponse)
async def pjsip_endpoints(numeric_only: bool = False, bridge: AmiBridge = Depends(get_ami_bridge)):
    """
    Lists PJSIP endpoints. ?numeric_only=true keeps only all-digit extensions.
    """
    logger.info(f"[API] PJSIP endpoints request received (numeric_only={numeric_only})")
    if not bridge.is_connected:
        logger.info("[API] PJSIP endpoints request - AMI not connected")
        return _error(400, "Not connected to AMI. Please connect to AMI Bridge first.", data=[])
    try:
        endpoints = await bridge.pjsip_endpoints(numeric_only=numeric_only)
    except Exception as e:
        logger.error(f"[API] PJSIP endpoints error: {e}", exc_info=True)
        return _error(500, f"An internal server error occurred: {str(e)}", data=[])

    logger.info(f"[API] Found {len(endpoints)} PJSIP endpoints")
    return {
        "success": True,
        "data": endpoints,
        "message": f"Found {len(endpoints)} PJSIP endpoints",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
