"""AI integration wiring."""

from quizforge.ai.router import ProviderMode, get_gateway_for_mode

__all__ = ["ProviderMode", "get_gateway_for_mode"]
