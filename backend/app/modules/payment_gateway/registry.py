"""Registry of configured PIX provider adapters.

Built once at startup and handed to the services that need a provider.
The active adapter is resolved from ``settings.PAYMENT_GATEWAY`` on every
call, so switching providers is a configuration change only.
"""

import logging
from typing import Optional

from app.core.config import Settings, settings as default_settings
from app.core.exceptions import ConfigurationError, ErrorCodes
from app.modules.payment_gateway.gateways import (
    EzzePayGateway,
    MockGateway,
    SuitPayGateway,
    VolutiGateway,
)
from app.modules.payment_gateway.interface import PaymentGatewayInterface

logger = logging.getLogger(__name__)


class GatewayRegistry:
    """Name -> adapter lookup plus active-provider resolution."""

    def __init__(self, config: Optional[Settings] = None):
        self._settings = config or default_settings
        self._gateways: dict[str, PaymentGatewayInterface] = {}

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "GatewayRegistry":
        """Create a registry holding every built-in adapter.

        Args:
            config: Settings to read credentials from (defaults to the
                application settings)

        Returns:
            Populated registry
        """
        config = config or default_settings
        timeout = config.GATEWAY_TIMEOUT_SECONDS
        registry = cls(config)
        registry.register(SuitPayGateway(
            api_key=config.SUITPAY_API_KEY,
            webhook_secret=config.SUITPAY_WEBHOOK_SECRET,
            base_url=config.SUITPAY_BASE_URL,
            timeout=timeout,
        ))
        registry.register(EzzePayGateway(
            api_key=config.EZZEPAY_API_KEY,
            webhook_secret=config.EZZEPAY_WEBHOOK_SECRET,
            base_url=config.EZZEPAY_BASE_URL,
            timeout=timeout,
        ))
        registry.register(VolutiGateway(
            api_key=config.VOLUTI_API_KEY,
            client_id=config.VOLUTI_CLIENT_ID,
            webhook_secret=config.VOLUTI_WEBHOOK_SECRET,
            base_url=config.VOLUTI_BASE_URL,
            timeout=timeout,
        ))
        registry.register(MockGateway(
            webhook_secret=config.MOCK_WEBHOOK_SECRET,
            auto_approve=config.MOCK_AUTO_APPROVE,
        ))
        logger.info(
            f"Gateway registry initialized: {', '.join(registry.get_supported_providers())} "
            f"(active: {config.PAYMENT_GATEWAY})"
        )
        return registry

    def register(self, gateway: PaymentGatewayInterface) -> None:
        """Add or replace an adapter under its own name."""
        self._gateways[gateway.name] = gateway

    def get_supported_providers(self) -> list[str]:
        """Registered provider names."""
        return list(self._gateways.keys())

    def is_registered(self, name: str) -> bool:
        return name.lower() in self._gateways

    @property
    def active_provider(self) -> str:
        """Name of the provider selected by configuration."""
        name = (self._settings.PAYMENT_GATEWAY or "").strip().lower()
        if not name:
            raise ConfigurationError(
                "PAYMENT_GATEWAY is not configured",
                code=ErrorCodes.CONFIGURATION_ERROR,
            )
        return name

    def get(self, name: Optional[str] = None) -> PaymentGatewayInterface:
        """Resolve an adapter by name, or the active one when name is None.

        Raises:
            ConfigurationError: If the name is not a registered provider
        """
        resolved = name.strip().lower() if name else self.active_provider
        gateway = self._gateways.get(resolved)
        if gateway is None:
            raise ConfigurationError(
                f"Payment gateway '{resolved}' is not registered. "
                f"Available: {', '.join(self.get_supported_providers()) or 'none'}",
                code=ErrorCodes.CONFIGURATION_ERROR,
                context={"provider": resolved},
            )
        return gateway

    def get_active(self) -> PaymentGatewayInterface:
        """Adapter selected by ``PAYMENT_GATEWAY``."""
        return self.get()


_registry: Optional[GatewayRegistry] = None


def init_gateway_registry(config: Optional[Settings] = None) -> GatewayRegistry:
    """Build the process-wide registry (called from the app lifespan and workers)."""
    global _registry
    _registry = GatewayRegistry.from_settings(config)
    return _registry


def get_gateway_registry() -> GatewayRegistry:
    """FastAPI dependency returning the process-wide registry."""
    if _registry is None:
        return init_gateway_registry()
    return _registry
