"""
Gateway callback signatures.

After a customer pays, the gateway redirects back with its own order id,
a payment id and a signature. The signature is the hex HMAC-SHA256 of
``"{gateway_order_id}|{gateway_payment_id}"`` keyed with the merchant
secret. Anything that does not verify must be treated as a failed payment.
"""

from __future__ import annotations

import hashlib
import hmac


def compute_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    """Return the hex signature the gateway is expected to send."""
    payload = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


class CallbackSignatureVerifier:
    """
    Verifies gateway callback signatures with a constant-time comparison.

    Example:
        >>> verifier = CallbackSignatureVerifier("merchant-secret")
        >>> verifier.verify("order_1", "pay_1", signature)
        True
    """

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("Signature secret must not be empty")
        self._secret = secret

    def sign(self, gateway_order_id: str, gateway_payment_id: str) -> str:
        return compute_signature(self._secret, gateway_order_id, gateway_payment_id)

    def verify(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        if not gateway_order_id or not gateway_payment_id or not signature:
            return False
        expected = self.sign(gateway_order_id, gateway_payment_id)
        return hmac.compare_digest(expected.encode(), signature.encode())


__all__ = ["compute_signature", "CallbackSignatureVerifier"]
