from fastapi import HTTPException, status

from instrument_gateway.app.core.gateway_manager import GatewayManager, gateway_manager


def get_gateway_manager() -> GatewayManager:
    """Dependency to get the global gateway manager instance"""
    if not gateway_manager.is_initialized:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is initializing, please try again later"
        )

    return gateway_manager
