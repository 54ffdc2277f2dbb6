"""
Request authentication for firecontrol.

With a configured secret, a request must either carry it as the
``secret`` parameter (plain mode) or sign its raw body:

    X-Hub-Signature: sha1=<hex hmac-sha1(secret, body)>

which is what GitHub-style webhook senders produce.
"""

import hashlib
import hmac
import logging
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hub-signature"


def _bytes(value: str) -> bytes:
    # compare_digest refuses non-ASCII str
    return value.encode("utf-8", "surrogatepass")


def sign_body(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha1).hexdigest()
    return f"sha1={digest}"


def check_secret(
    secret: Optional[str],
    plain: bool,
    params: Mapping[str, Any],
    headers: Mapping[str, str],
    body: bytes,
) -> bool:
    """True if the request is allowed under the configured secret."""
    if not secret:
        return True

    if plain:
        given = params.get("secret")
        return isinstance(given, str) and hmac.compare_digest(_bytes(given), _bytes(secret))

    checksum = headers.get(SIGNATURE_HEADER)
    if not checksum:
        logger.debug("Request without signature header")
        return False
    return hmac.compare_digest(_bytes(checksum), _bytes(sign_body(secret, body)))
