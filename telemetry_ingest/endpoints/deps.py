"""Dependencias compartidas por los routers."""

from __future__ import annotations

from typing import Iterator

from fastapi import Depends, HTTPException
from sqlalchemy.engine import Connection

from ..core.receiver import IngestReceiver, get_receiver


def get_active_receiver() -> IngestReceiver:
    receiver = get_receiver()
    if receiver is None or receiver.engine is None:
        raise HTTPException(status_code=503, detail="receiver not started")
    return receiver


def get_connection(receiver: IngestReceiver = Depends(get_active_receiver)) -> Iterator[Connection]:
    with receiver.engine.connect() as conn:
        yield conn
