"""
Modeling service backends registry and factory.
"""

from src.core.service import ModelingService

from .local import LocalModelingService, LocalServiceConfig

# Registry of available backends
SERVICE_REGISTRY = {
    "local": LocalModelingService,
}


def get_service(service_name: str, config: dict | None = None) -> ModelingService:
    """Factory to create a modeling service backend

    Args:
        service_name: Name of the backend (e.g., 'local')
        config: Configuration dict for the backend

    Returns:
        Instance of the backend

    Raises:
        ValueError: If service_name is not registered
    """
    if service_name not in SERVICE_REGISTRY:
        available = ", ".join(SERVICE_REGISTRY.keys())
        raise ValueError(f"Unknown service '{service_name}'. Available services: {available}")

    service_class = SERVICE_REGISTRY[service_name]
    return service_class(config)


def list_services() -> list[str]:
    """List all available backends"""
    return list(SERVICE_REGISTRY.keys())


__all__ = [
    "LocalModelingService",
    "LocalServiceConfig",
    "get_service",
    "list_services",
]
