"""
Webhook signature verification.

The provider signs each delivery with HMAC-SHA256 over
``"{id}.{timestamp}.{body}"`` using the base64 secret after its ``whsec_``
prefix. The signature header holds one or more space separated
``v1,<base64 digest>`` entries.
"""
import base64
import hashlib
import hmac
import time

SECRET_PREFIX = "whsec_"


class WebhookVerificationError(Exception):
    pass


def _secret_bytes(secret):
    if secret.startswith(SECRET_PREFIX):
        secret = secret[len(SECRET_PREFIX):]
    try:
        return base64.b64decode(secret)
    except (ValueError, TypeError) as e:
        raise WebhookVerificationError("Webhook secret is not valid base64") from e


def sign(secret, message_id, timestamp, body):
    signed = f"{message_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_secret_bytes(secret), signed, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(secret, headers, body, tolerance=300, now=None):
    """Raise WebhookVerificationError unless ``body`` carries a valid, fresh signature."""
    message_id = headers.get("svix-id") or headers.get("webhook-id")
    timestamp = headers.get("svix-timestamp") or headers.get("webhook-timestamp")
    signature_header = headers.get("svix-signature") or headers.get("webhook-signature")
    if not (message_id and timestamp and signature_header):
        raise WebhookVerificationError("Missing signature headers")

    try:
        sent_at = int(timestamp)
    except ValueError as e:
        raise WebhookVerificationError("Invalid signature timestamp") from e

    now = int(now if now is not None else time.time())
    if abs(now - sent_at) > tolerance:
        raise WebhookVerificationError("Signature timestamp outside tolerance")

    expected = sign(secret, message_id, timestamp, body)
    for entry in signature_header.split():
        version, _, signature = entry.partition(",")
        if version == "v1" and hmac.compare_digest(signature, expected):
            return
    raise WebhookVerificationError("No matching signature")
