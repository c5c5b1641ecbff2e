from instrument_gateway.app.core.gateway_exceptions import InvalidRequestError
from instrument_gateway.app.models.device_config import ItemKind


def format_analog(value: float) -> str:
    return f"{value:.2f}\n"


def format_temperature(value: float) -> str:
    return f"{value:3.1f}\n"


def format_switch(value: bool) -> str:
    return "true\n" if value else "false\n"


_FORMATTERS = {
    ItemKind.ANALOG: format_analog,
    ItemKind.TEMPERATURE: format_temperature,
    ItemKind.SWITCH: format_switch,
}


def format_reading(kind: ItemKind, value) -> str:
    """Plain-text body for a cached reading"""
    return _FORMATTERS[kind](value)


def parse_switch_body(body: bytes) -> bool:
    """A switch command body must be exactly 'true' or 'false'"""
    if body == b"true":
        return True
    if body == b"false":
        return False
    raise InvalidRequestError(f"Switch state must be 'true' or 'false', got {body[:32]!r}")
