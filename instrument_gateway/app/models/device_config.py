from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, NamedTuple, Optional, Tuple, Union

from instrument_gateway.app.core.expression import CompiledExpression


DEFAULT_READ_TIMEOUT = 5.0


class ItemKind(Enum):
    """Item kinds, valued by the path segment clients use"""
    ANALOG = "adcs"
    TEMPERATURE = "tmpts"
    SWITCH = "swts"


class ItemKey(NamedTuple):
    device_id: str
    kind: ItemKind
    item_id: str


@dataclass(frozen=True)
class AnalogItem:
    """ADC channel: one raw byte converted by a formula"""
    item_id: str
    device_id: str
    cmdget: bytes
    expr: str
    expression: CompiledExpression = field(compare=False, repr=False)
    vref: float = 0.0

    kind = ItemKind.ANALOG


@dataclass(frozen=True)
class TemperatureItem:
    """Two-byte fixed-point temperature sensor"""
    item_id: str
    device_id: str
    cmdlsb: bytes
    cmdmsb: bytes

    kind = ItemKind.TEMPERATURE


@dataclass(frozen=True)
class SwitchItem:
    """Binary actuator with get/set/clear commands"""
    item_id: str
    device_id: str
    cmdget: bytes
    cmdset: bytes
    cmdclr: bytes

    kind = ItemKind.SWITCH


Item = Union[AnalogItem, TemperatureItem, SwitchItem]


@dataclass(frozen=True)
class DeviceConfig:
    """Configuration for a single serial-attached device"""
    device_id: str
    devfile: str
    baud: int
    read_timeout_s: float = DEFAULT_READ_TIMEOUT
    adcs: Tuple[AnalogItem, ...] = ()
    tmpts: Tuple[TemperatureItem, ...] = ()
    swts: Tuple[SwitchItem, ...] = ()

    def items_of(self, kind: ItemKind) -> Tuple[Item, ...]:
        if kind == ItemKind.ANALOG:
            return self.adcs
        if kind == ItemKind.TEMPERATURE:
            return self.tmpts
        return self.swts

    def iter_items(self) -> Iterator[Tuple[ItemKind, Item]]:
        """Items in poll order: analog, temperature, then switches"""
        for kind in (ItemKind.ANALOG, ItemKind.TEMPERATURE, ItemKind.SWITCH):
            for item in self.items_of(kind):
                yield kind, item

    def get_item(self, kind: ItemKind, item_id: str) -> Optional[Item]:
        for item in self.items_of(kind):
            if item.item_id == item_id:
                return item
        return None

    @property
    def item_count(self) -> int:
        return len(self.adcs) + len(self.tmpts) + len(self.swts)
