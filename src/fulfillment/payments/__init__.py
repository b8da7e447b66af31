"""Payment collaborators: gateway charging and callback signature checks."""

from fulfillment.payments.gateway import GatewayResult, InMemoryPaymentGateway, PaymentGateway
from fulfillment.payments.signature import CallbackSignatureVerifier, compute_signature

__all__ = [
    "GatewayResult",
    "PaymentGateway",
    "InMemoryPaymentGateway",
    "CallbackSignatureVerifier",
    "compute_signature",
]
