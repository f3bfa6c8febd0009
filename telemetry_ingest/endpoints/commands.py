"""Endpoint de comandos de escritura hacia el HMI."""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from ..core.errors import TransportError
from ..core.receiver import IngestReceiver
from ..core.transport.commands import build_write_payload
from ..schemas import CommandOut
from .deps import get_active_receiver

router = APIRouter(prefix="/api/devices", tags=["commands"])


@router.post("/{device_ref}/command", response_model=CommandOut)
def send_command(
    device_ref: str,
    command: Dict[str, Any] = Body(...),
    receiver: IngestReceiver = Depends(get_active_receiver),
):
    """Envía ``command`` como ``Write_Data`` a ``<device_ref>/write_data``."""
    if not command:
        raise HTTPException(status_code=400, detail="command body is empty")
    if receiver.commands is None:
        raise HTTPException(status_code=503, detail="command publisher not available")

    try:
        result = receiver.commands.send_command(device_ref, build_write_payload(command))
    except TransportError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return CommandOut(
        success=True,
        device_ref=result.device_ref,
        topic=result.topic,
        recorded=result.recorded,
        command=command,
    )
