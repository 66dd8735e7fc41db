import hashlib
import hmac


def compute_payment_signature(gateway_order_id: str, payment_id: str, secret: str) -> str:
    """HMAC-SHA256 hex digest of ``order_id|payment_id``, as the gateway signs it."""
    message = f"{gateway_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(gateway_order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    if not signature or not secret:
        return False
    expected = compute_payment_signature(gateway_order_id, payment_id, secret)
    return hmac.compare_digest(expected, signature)
