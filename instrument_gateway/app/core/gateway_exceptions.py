# Custom Exception Classes
class GatewayError(Exception):
    """Base exception for instrument gateway operations"""
    def __init__(self, message: str, device_id: str = None, item_id: str = None):
        super().__init__(message)
        self.device_id = device_id
        self.item_id = item_id


class ConfigurationError(GatewayError):
    """Raised when the device configuration is missing or invalid"""
    pass


class TransportError(GatewayError):
    """Base class for serial session failures"""
    pass


class TransportConnectionError(TransportError):
    """Raised when the serial session cannot be opened"""
    pass


class TransportIOError(TransportError):
    """Raised when a write or read on the serial session fails"""
    pass


class TransportTimeout(TransportError):
    """Raised when the device does not answer within the read timeout"""
    pass


class ProtocolError(GatewayError):
    """Raised when a device reply does not match the item protocol"""
    pass


class AckError(ProtocolError):
    """Raised when a switch set/clear is not acknowledged"""
    pass


class ExpressionError(GatewayError):
    """Raised when an analog conversion formula cannot be compiled or evaluated"""
    pass


class ItemNotFoundError(GatewayError):
    """Raised when a device, item kind or item id is unknown"""
    pass


class InvalidRequestError(GatewayError):
    """Raised when a client request is malformed"""
    pass


class NoReadingError(GatewayError):
    """Raised when an item has not been read successfully yet"""
    pass
