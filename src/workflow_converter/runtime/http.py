"""HTTP Request node helper built on requests."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Optional, Tuple

import requests
from requests.auth import AuthBase, HTTPBasicAuth, HTTPDigestAuth

from .node import credential


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30000


def _pairs(value: Any) -> Dict[str, Any]:
    """Accept {"k": v} or n8n's {"parameters": [{"name", "value"}]} shape."""
    if not value:
        return {}
    if isinstance(value, dict) and isinstance(value.get("parameters"), list):
        return {
            str(pair.get("name")): pair.get("value")
            for pair in value["parameters"]
            if isinstance(pair, dict) and pair.get("name")
        }
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list):
        return {
            str(pair.get("name")): pair.get("value")
            for pair in value
            if isinstance(pair, dict) and pair.get("name")
        }
    raise ValueError(f"Expected an object of name/value pairs, got {type(value).__name__}")


def apply_credential(
    kind: str,
    headers: Dict[str, Any],
    query: Dict[str, Any],
) -> Optional[AuthBase]:
    """
    Apply one credential to the outgoing request.

    Mutates headers/query for header, query and bearer style credentials;
    returns a requests auth object for basic and digest auth.
    """
    data = credential(kind)
    if kind == "httpBasicAuth":
        return HTTPBasicAuth(data.get("user", ""), data.get("password", ""))
    if kind == "httpDigestAuth":
        return HTTPDigestAuth(data.get("user", ""), data.get("password", ""))
    if kind == "httpHeaderAuth":
        headers[data["name"]] = data.get("value", "")
        return None
    if kind == "httpQueryAuth":
        query[data["name"]] = data.get("value", "")
        return None
    if kind in ("oAuth2Api", "oAuth1Api"):
        token = data.get("access_token") or data.get("accessToken")
        if not token:
            raise ValueError(f"Credential '{kind}' has no access_token")
        headers["Authorization"] = f"Bearer {token}"
        return None
    raise ValueError(f"Unsupported HTTP credential kind: {kind}")


def build_request(params: Dict[str, Any], credential_kinds: Iterable[str] = ()) -> Dict[str, Any]:
    """Translate node parameters into keyword arguments for requests.request."""
    url = params.get("url")
    if not isinstance(url, str) or not url:
        raise ValueError("HTTP Request node needs a non-empty url")

    method = str(params.get("method") or "GET").upper()
    options = params.get("options") or {}

    headers = _pairs(params.get("headers"))
    headers.update(_pairs(params.get("headerParameters")))
    query = _pairs(params.get("queryParameters"))

    auth = None
    for kind in credential_kinds:
        auth = apply_credential(kind, headers, query) or auth

    timeout_ms = params.get("timeout")
    if timeout_ms is None:
        timeout_ms = options.get("timeout", DEFAULT_TIMEOUT_MS)

    kwargs: Dict[str, Any] = {
        "method": method,
        "url": url,
        "headers": {k: str(v) for k, v in headers.items()},
        "params": query or None,
        "timeout": float(timeout_ms) / 1000.0,
    }
    if auth is not None:
        kwargs["auth"] = auth

    json_body = params.get("jsonBody")
    if isinstance(json_body, str) and json_body.strip():
        json_body = json.loads(json_body)
    if json_body not in (None, ""):
        kwargs["json"] = json_body
    elif params.get("bodyParameters"):
        kwargs["json"] = _pairs(params["bodyParameters"])
    elif params.get("body") not in (None, ""):
        body = params["body"]
        if isinstance(body, (dict, list)):
            kwargs["json"] = body
        else:
            kwargs["data"] = str(body)
    return kwargs


def decode_response(response: requests.Response) -> Any:
    """JSON body when the server sent JSON, otherwise a summary dict."""
    content_type = response.headers.get("Content-Type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            logger.warning("Response declared JSON but could not be decoded")
    return {
        "status_code": response.status_code,
        "headers": dict(response.headers),
        "body": response.text,
    }


def send_request(
    params: Dict[str, Any],
    credential_kinds: Iterable[str] = (),
    session: Optional[requests.Session] = None,
) -> Any:
    """
    Perform the request described by params.

    Raises:
        requests.HTTPError: On a 4xx/5xx response
        requests.RequestException: On connection errors and timeouts
    """
    kwargs = build_request(params, credential_kinds)
    sender = session or requests
    logger.info("HTTP %s %s", kwargs["method"], kwargs["url"])
    response = sender.request(**kwargs)
    response.raise_for_status()
    return decode_response(response)


__all__ = ["build_request", "send_request", "decode_response", "apply_credential"]
