from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional


class AnalogItemSchema(BaseModel):
    id: str = Field(min_length=1)
    cmdget: str = Field(min_length=1)
    expr: str = Field(min_length=1)
    vref: float = 0.0


class TemperatureItemSchema(BaseModel):
    id: str = Field(min_length=1)
    cmdlsb: str = Field(min_length=1)
    cmdmsb: str = Field(min_length=1)


class SwitchItemSchema(BaseModel):
    id: str = Field(min_length=1)
    cmdget: str = Field(min_length=1)
    cmdset: str = Field(min_length=1)
    cmdclr: str = Field(min_length=1)


class DeviceSchema(BaseModel):
    """One device table of the device file"""
    model_config = ConfigDict(populate_by_name=True)

    devfile: str = Field(min_length=1)
    baud: int = Field(gt=0)
    read_timeout_s: Optional[float] = Field(default=None, gt=0)
    adcs: List[AnalogItemSchema] = Field(default_factory=list, alias="ADCs")
    tmpts: List[TemperatureItemSchema] = Field(default_factory=list)
    swts: List[SwitchItemSchema] = Field(default_factory=list)

    @field_validator("adcs", "tmpts", "swts")
    @classmethod
    def ids_unique(cls, items):
        seen = set()
        for item in items:
            if item.id in seen:
                raise ValueError(f"duplicate item id '{item.id}'")
            seen.add(item.id)
        return items
