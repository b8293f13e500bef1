"""Gateway implementations."""

from quizforge.ai.providers.base import GatewayRequest, GatewayResponse, GenerationConfig, GenerativeGateway, MediaWindow

__all__ = ["GatewayRequest", "GatewayResponse", "GenerationConfig", "GenerativeGateway", "MediaWindow"]
