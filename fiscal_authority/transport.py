"""
HTTP transport for SOAP requests.

One POST per call, no retries here (GovernmentSoapClient owns the retry
policy).  Connection failures, timeouts and HTTP 5xx answers become
TransportError; any other response is returned with its full body for the
parser to judge.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import requests

from fiscal_kernel.exceptions import TransportError
from fiscal_kernel.logging_config import get_logger

logger = get_logger("authority.transport")

SOAP12_CONTENT_TYPE = 'application/soap+xml; charset=utf-8; action="{action}"'


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: str


@runtime_checkable
class Transport(Protocol):
    """Anything that can POST a SOAP body and return the raw response."""

    def post(
        self,
        url: str,
        body: str,
        *,
        soap_action: str,
        timeout: float,
        client_cert: tuple[str, str] | None = None,
    ) -> TransportResponse: ...


class HttpTransport:
    """
    Transport over a ``requests.Session``.

    Args:
        session: Session to reuse; a new one is created when omitted.
        verify: CA bundle path or bool, passed straight to requests.
    """

    def __init__(self, session: requests.Session | None = None, verify: bool | str = True):
        self._session = session or requests.Session()
        self._verify = verify

    def post(
        self,
        url: str,
        body: str,
        *,
        soap_action: str,
        timeout: float,
        client_cert: tuple[str, str] | None = None,
    ) -> TransportResponse:
        headers = {"Content-Type": SOAP12_CONTENT_TYPE.format(action=soap_action)}
        try:
            response = self._session.post(
                url,
                data=body.encode("utf-8"),
                headers=headers,
                timeout=timeout,
                cert=client_cert,
                verify=self._verify,
            )
        except requests.Timeout as exc:
            raise TransportError(f"Request timeout after {timeout}s", url=url) from exc
        except requests.RequestException as exc:
            raise TransportError(f"Connection failed: {exc}", url=url) from exc

        if response.status_code >= 500:
            logger.warning(
                "authority_server_error",
                extra={"url": url, "status_code": response.status_code},
            )
            raise TransportError(f"HTTP {response.status_code} from authority", url=url)

        # Authorities answer UTF-8 whatever the Content-Type header claims
        return TransportResponse(
            status_code=response.status_code,
            body=response.content.decode("utf-8", errors="replace"),
        )
