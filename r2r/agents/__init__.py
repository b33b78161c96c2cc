"""AI gateway package."""

from r2r.agents.chat import FinancialChat
from r2r.agents.gateway import (
    ExternalServiceFailure,
    GatewayError,
    GatewayResult,
    GeminiGateway,
)

__all__ = [
    "ExternalServiceFailure",
    "FinancialChat",
    "GatewayError",
    "GatewayResult",
    "GeminiGateway",
]
