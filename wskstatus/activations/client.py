"""HTTP client for the activations endpoint of an OpenWhisk-style API.

A single call fetches one page of activation records. Every failure mode
(bad URL, bad credential, transport error, HTTP error status, malformed body)
surfaces as :class:`CommunicationError`; callers do not branch on the cause.
"""

import base64
import logging

import httpx
from pydantic import ValidationError

from wskstatus.activations.models import ActivationList, ActivationRecord

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0


class CommunicationError(Exception):
    """A page of activation data could not be obtained or decoded."""


def build_activations_url(base: str, namespace: str) -> httpx.URL:
    """Build the activations URL for ``namespace``.

    ``base`` is a bare host (``openwhisk.example.com``) as found in
    ``.wskprops``; a base that already carries a scheme is used as-is.
    """
    root = base.rstrip("/")
    if not root.startswith(("http://", "https://")):
        root = f"https://{root}"
    try:
        url = httpx.URL(f"{root}/api/v1/namespaces/{namespace}/activations")
    except httpx.InvalidURL as e:
        raise CommunicationError(f"base url not correct: {e}") from e
    if not url.host or not namespace:
        raise CommunicationError(f"base url not correct: {base!r} / {namespace!r}")
    return url


def _basic_auth_header(auth: str) -> str:
    """Encode the ``user:password`` credential verbatim as a Basic header."""
    try:
        encoded = base64.b64encode(auth.encode("utf-8")).decode("ascii")
    except UnicodeEncodeError as e:
        raise CommunicationError("auth not correct") from e
    return f"Basic {encoded}"


def _build_params(since: int | None, upto: int | None, include_details: bool) -> dict[str, str]:
    params: dict[str, str] = {}
    if since is not None:
        params["since"] = str(since)
    if upto is not None:
        params["upto"] = str(upto)
    if include_details:
        params["docs"] = "true"
    return params


async def fetch_activations(
    base: str,
    auth: str,
    namespace: str,
    since: int | None = None,
    upto: int | None = None,
    include_details: bool = False,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[ActivationRecord]:
    """Fetch one page of activations.

    Args:
        base: API host, e.g. ``openwhisk.example.com``.
        auth: ``user:password`` credential.
        namespace: Namespace whose activations to list.
        since: Inclusive lower bound on activation start (ms epoch).
        upto: Inclusive upper bound on activation start (ms epoch).
        include_details: Ask for logs and full documents (``docs=true``).
        timeout: Transport timeout in seconds.

    Raises:
        CommunicationError: On any failure to obtain or decode the page.
    """
    url = build_activations_url(base, namespace)
    headers = {
        "Authorization": _basic_auth_header(auth),
        "Accept": "application/json",
    }
    params = _build_params(since, upto, include_details)

    logger.debug("Fetching activations: %s params=%s", url, params)
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(url, headers=headers, params=params)
            _ = response.raise_for_status()
    except httpx.TimeoutException as e:
        raise CommunicationError(f"activations request timed out after {timeout}s: {e}") from e
    except httpx.HTTPStatusError as e:
        raise CommunicationError(
            f"activations API error: HTTP {e.response.status_code} - {e.response.text[:500]}"
        ) from e
    except httpx.HTTPError as e:
        raise CommunicationError(f"cannot reach {url.host}: {e}") from e

    try:
        return ActivationList.validate_json(response.content)
    except ValidationError as e:
        raise CommunicationError(f"server responded with malformed data: {e.error_count()} error(s): {e}") from e
