"""
Byte-level exchanges for the three item kinds.

Every exchange is a command write followed by a one-byte reply. None of these
functions lock anything: the caller must hold the device's exchange lock for
the whole call, including both halves of a temperature read.
"""

from instrument_gateway.app.core.gateway_exceptions import AckError, ProtocolError
from instrument_gateway.app.core.transport import Transport
from instrument_gateway.app.models.device_config import AnalogItem, SwitchItem, TemperatureItem


ACK_BYTE = b"K"
TEMPERATURE_FRACTION_STEP = 0.0625


def _exchange(transport: Transport, command: bytes) -> int:
    transport.write(command)
    return transport.read(1)[0]


def read_analog(transport: Transport, item: AnalogItem) -> float:
    raw = _exchange(transport, item.cmdget)
    return item.expression.evaluate(adcval=float(raw), vref=item.vref)


def convert_temperature(msb: int, lsb: int) -> float:
    """
    Decode a sign + 7-bit integer + 4-bit fraction reading.

    The MSB carries the sign in bit 7 and the integer high bits in bits 0-2;
    the LSB carries the integer low nibble and a fraction in 1/16 steps.
    Negative readings are stored as an offset from -128.
    """
    sign = msb >> 7
    fraction = (lsb & 0x0F) * TEMPERATURE_FRACTION_STEP
    magnitude = ((msb << 4) & 0x7F) | (lsb >> 4)
    value = magnitude + fraction
    if sign:
        value = -(128 - value)
    return value


def read_temperature(transport: Transport, item: TemperatureItem) -> float:
    lsb = _exchange(transport, item.cmdlsb)
    msb = _exchange(transport, item.cmdmsb)
    return convert_temperature(msb, lsb)


def read_switch(transport: Transport, item: SwitchItem) -> bool:
    reply = _exchange(transport, item.cmdget)
    if reply == 0:
        return False
    if reply == 1:
        return True
    raise ProtocolError(
        f"Switch {item.item_id} replied {reply:#04x}, expected 0x00 or 0x01",
        device_id=item.device_id,
        item_id=item.item_id
    )


def write_switch(transport: Transport, item: SwitchItem, state: bool) -> None:
    command = item.cmdset if state else item.cmdclr
    transport.write(command)
    reply = transport.read(1)
    if reply != ACK_BYTE:
        raise AckError(
            f"Switch {item.item_id} {'set' if state else 'clear'} not acknowledged (got {reply!r})",
            device_id=item.device_id,
            item_id=item.item_id
        )
