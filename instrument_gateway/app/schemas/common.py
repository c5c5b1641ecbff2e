from pydantic import BaseModel
from typing import Any, Dict, Optional


class RootResponse(BaseModel):
    message: str
    version: str


class StatusResponse(BaseModel):
    service_status: str
    version: str
    device_count: int
    values: Dict[str, Dict[str, Dict[str, Optional[Dict[str, Any]]]]]
    timestamp: float


class ErrorDetail(BaseModel):
    error_type: str
    message: str
    device_id: Optional[str] = None
    item_id: Optional[str] = None
    timestamp: float


class ErrorResponse(BaseModel):
    detail: ErrorDetail
