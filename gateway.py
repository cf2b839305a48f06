import json
import logging
from functools import partial
from typing import Any, Callable, Optional
from urllib.parse import quote_plus

import requests
from flask import Response, jsonify

# ----------------------
# Upstream
# ----------------------
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.5-flash-preview-05-20"
API_KEY_NAME = "GEMINI_API_KEY"

MISSING_KEY_MESSAGE = "API key not configured on the server."

ConfigLookup = Callable[[str], Optional[str]]

logger = logging.getLogger("oracoin-gateway")


def upstream_url(model: str = DEFAULT_MODEL) -> str:
    """Gemini generateContent endpoint for a model, without the key."""
    return f"{GEMINI_BASE_URL}/{model}:generateContent"


def redact(text: str, secret: Optional[str]) -> str:
    """Blank out the credential wherever it shows up in a message."""
    if not secret:
        return text
    # requests puts the url-encoded form into exception urls
    for form in (secret, quote_plus(secret)):
        text = text.replace(form, "***")
    return text


def resolve_api_key(get_config: ConfigLookup) -> Optional[str]:
    api_key = get_config(API_KEY_NAME)
    if not api_key:
        logger.error("%s is not configured", API_KEY_NAME)
        return None
    return api_key


# ----------------------
# Forwarding
# ----------------------
def forward(
    payload: Any,
    api_key: str,
    *,
    url: str,
    on_upstream_error: Callable[[requests.Response], Any],
    on_failure: Callable[[Exception], Any],
    timeout: Optional[float] = None,
):
    """POST one payload to Gemini and map the outcome to a Flask response.

    The key travels as the ``key`` query parameter. Exactly one request is
    made; nothing is retried. Non-2xx answers go through
    ``on_upstream_error``, anything raised (network errors, a body that is
    not JSON) goes through ``on_failure``.
    """
    try:
        resp = requests.post(
            url,
            params={"key": api_key},
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        if not 200 <= resp.status_code < 300:
            return on_upstream_error(resp)
        return jsonify(resp.json()), 200
    except Exception as e:
        return on_failure(e)


# ----------------------
# Generic gateway
# ----------------------
def _text_response(body: str, status: int) -> Response:
    return Response(body, status=status, mimetype="text/plain")


def relay_upstream_error(resp: requests.Response) -> Response:
    """Hand the upstream error body back untouched, status included."""
    body = resp.text
    logger.warning("Gemini API error %s: %s", resp.status_code, body)
    return _text_response(body, resp.status_code)


def describe_failure(exc: Exception, secret: Optional[str] = None) -> Response:
    message = redact(str(exc), secret)
    logger.error("Error in API gateway: %s: %s", type(exc).__name__, message)
    return _text_response(message, 500)


def handle_proxy(request, get_config: ConfigLookup, *, url: str, timeout: Optional[float] = None):
    """Forward any JSON body to Gemini with the server-held key attached."""
    if request.method != "POST":
        return _text_response("Method Not Allowed", 405)

    try:
        payload = json.loads(request.get_data(as_text=True))
    except ValueError as e:
        return describe_failure(e)

    api_key = resolve_api_key(get_config)
    if not api_key:
        return _text_response(MISSING_KEY_MESSAGE, 500)

    return forward(
        payload,
        api_key,
        url=url,
        on_upstream_error=relay_upstream_error,
        on_failure=partial(describe_failure, secret=api_key),
        timeout=timeout,
    )
