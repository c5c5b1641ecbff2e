from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse

from instrument_gateway.app.core.gateway_exceptions import (
    InvalidRequestError, ItemNotFoundError, NoReadingError
)
from instrument_gateway.app.core.gateway_manager import GatewayManager
from instrument_gateway.app.dependencies import get_gateway_manager
from instrument_gateway.app.models.device_config import ItemKind
from instrument_gateway.app.utilities.formatters import format_reading, parse_switch_body
from instrument_gateway.app.utilities.telemetry import logger

router = APIRouter(tags=["items"])


def _parse_kind(item_kind: str, device_id: str, item_id: str) -> ItemKind:
    try:
        return ItemKind(item_kind)
    except ValueError:
        raise ItemNotFoundError(
            f"Unknown item kind '{item_kind}' (expected adcs, tmpts or swts)",
            device_id=device_id,
            item_id=item_id
        )


@router.get("/{device_id}/{item_kind}/{item_id}", response_class=PlainTextResponse)
async def read_item(
    device_id: str,
    item_kind: str,
    item_id: str,
    manager: GatewayManager = Depends(get_gateway_manager)
) -> PlainTextResponse:
    """Latest polled value as plain text; served from the cache only"""
    kind = _parse_kind(item_kind, device_id, item_id)
    cached = manager.read_item(device_id, kind, item_id)
    if cached is None:
        raise NoReadingError(
            f"No reading yet for {kind.value} item '{item_id}' on device '{device_id}'",
            device_id=device_id,
            item_id=item_id
        )
    return PlainTextResponse(format_reading(kind, cached.value))


@router.post("/{device_id}/{item_kind}/{item_id}")
async def change_item(
    device_id: str,
    item_kind: str,
    item_id: str,
    request: Request,
    manager: GatewayManager = Depends(get_gateway_manager)
) -> Response:
    """
    Set (body ``true``) or clear (body ``false``) a switch.

    The command shares the device's exchange lock with the poller. The cached
    value is not touched; the new state shows up after the next poll.
    """
    kind = _parse_kind(item_kind, device_id, item_id)
    if kind != ItemKind.SWITCH:
        raise InvalidRequestError(
            f"Only switches can be changed, not {kind.value}",
            device_id=device_id,
            item_id=item_id
        )

    state = parse_switch_body(await request.body())
    await manager.set_switch(device_id, item_id, state)

    logger.info("Switch changed via API", extra={
        "component": "api",
        "device_id": device_id,
        "item_id": item_id,
        "state": state
    })
    return Response(status_code=200)
