"""Blocking HTTP helpers shared by vendor adapters.

One call per invocation, a fixed client timeout, and a single error type:
every non-2xx response or transport failure becomes a ProviderCallError that
carries the vendor's HTTP status and a description of its error body.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Callable, Mapping
import urllib.error
import urllib.parse
import urllib.request
import uuid

from ..errors import ProviderCallError

log = logging.getLogger("delivery.http")

ErrorDescriber = Callable[[Any], str]

MAX_ERROR_DETAILS = 500


def basic_auth_header(username: str, password: str) -> str:
    token = f"{username}:{password}".encode("utf-8")
    encoded = base64.b64encode(token).decode("ascii")
    return f"Basic {encoded}"


def bearer_auth_header(token: str) -> str:
    return f"Bearer {token}"


def post_form(
    url: str,
    fields: Mapping[str, str],
    *,
    authorization: str,
    vendor: str,
    timeout: float,
    describe_error: ErrorDescriber | None = None,
) -> Any:
    data = urllib.parse.urlencode(dict(fields)).encode("utf-8")
    return _request(
        url,
        method="POST",
        data=data,
        headers={
            "Authorization": authorization,
            "Content-Type": "application/x-www-form-urlencoded",
        },
        vendor=vendor,
        timeout=timeout,
        describe_error=describe_error,
    )


def post_json(
    url: str,
    body: Mapping[str, Any],
    *,
    authorization: str,
    vendor: str,
    timeout: float,
    describe_error: ErrorDescriber | None = None,
    include_headers: bool = False,
) -> Any:
    """POST a JSON body; with `include_headers` returns (parsed body, response headers)."""
    data = json.dumps(body).encode("utf-8")
    return _request(
        url,
        method="POST",
        data=data,
        headers={"Authorization": authorization, "Content-Type": "application/json"},
        vendor=vendor,
        timeout=timeout,
        describe_error=describe_error,
        include_headers=include_headers,
    )


def post_multipart(
    url: str,
    fields: Mapping[str, str],
    files: list[tuple[str, str, str, bytes]],
    *,
    authorization: str,
    vendor: str,
    timeout: float,
    describe_error: ErrorDescriber | None = None,
) -> Any:
    """POST multipart/form-data; `files` holds (field, filename, content_type, content)."""
    boundary = f"----delivery-{uuid.uuid4().hex}"
    chunks: list[bytes] = []
    for name, value in fields.items():
        chunks.append(
            f'--{boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode("utf-8")
        )
    for name, filename, content_type, content in files:
        header = (
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            f"Content-Type: {content_type or 'application/octet-stream'}\r\n\r\n"
        )
        chunks.append(header.encode("utf-8") + content + b"\r\n")
    chunks.append(f"--{boundary}--\r\n".encode("utf-8"))

    return _request(
        url,
        method="POST",
        data=b"".join(chunks),
        headers={
            "Authorization": authorization,
            "Content-Type": f"multipart/form-data; boundary={boundary}",
        },
        vendor=vendor,
        timeout=timeout,
        describe_error=describe_error,
    )


def get_json(
    url: str,
    *,
    authorization: str,
    vendor: str,
    timeout: float,
    describe_error: ErrorDescriber | None = None,
) -> Any:
    return _request(
        url,
        method="GET",
        data=None,
        headers={"Authorization": authorization, "Accept": "application/json"},
        vendor=vendor,
        timeout=timeout,
        describe_error=describe_error,
    )


def _request(
    url: str,
    *,
    method: str,
    data: bytes | None,
    headers: Mapping[str, str],
    vendor: str,
    timeout: float,
    describe_error: ErrorDescriber | None,
    include_headers: bool = False,
) -> Any:
    request = urllib.request.Request(url, data=data, method=method)
    for name, value in headers.items():
        request.add_header(name, value)

    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            status = int(response.getcode())
            raw = response.read()
            response_headers = response.headers
    except urllib.error.HTTPError as exc:
        details = exc.read().decode("utf-8", errors="replace")
        raise _call_error(vendor, exc.code, details, describe_error) from exc
    except urllib.error.URLError as exc:
        raise ProviderCallError(vendor, f"{vendor} API request failed: {exc.reason}") from exc
    except TimeoutError as exc:
        raise ProviderCallError(vendor, f"{vendor} API request timed out after {timeout}s") from exc

    text = raw.decode("utf-8", errors="replace") if raw else ""
    if status < 200 or status >= 300:
        raise _call_error(vendor, status, text, describe_error)

    log.debug("[HTTP] vendor=%s method=%s url=%s status=%s", vendor, method, url, status)
    if include_headers:
        return _parse_json(text), response_headers
    return _parse_json(text)


def _call_error(
    vendor: str,
    status: int,
    details: str,
    describe_error: ErrorDescriber | None,
) -> ProviderCallError:
    parsed = _parse_json(details)
    description = ""
    if describe_error is not None and parsed is not None:
        description = describe_error(parsed)
    message = f"{vendor} API error: status code {status}"
    if description:
        message = f"{message}: {description}"
    else:
        message = f"{message}: {details[:MAX_ERROR_DETAILS]}"
    log.error("[HTTP ERROR] vendor=%s status=%s response=%s", vendor, status, details[:MAX_ERROR_DETAILS])
    return ProviderCallError(vendor, message, status_code=status, details=details[:MAX_ERROR_DETAILS])


def _parse_json(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None
