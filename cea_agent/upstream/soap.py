"""
CEA commercial SOAP services: contract detail, debt and consumption.

Envelopes are plain string templates; responses go through
``cea_agent.upstream.parser``. Calls are reads and use the shared retry
policy. Transport failures after retries come back as ``UpstreamFailure``.
"""

import logging
from typing import Callable, Optional
from xml.sax.saxutils import escape

import httpx

from cea_agent.config import settings
from cea_agent.errors import UpstreamError, UpstreamHTTPError
from cea_agent.schemas.upstream_schema import (
    ConsumptionResult,
    ContractResult,
    DebtResult,
    ErrorKind,
    UpstreamFailure,
    UpstreamResult,
)
from cea_agent.upstream.http import fetch_with_retry
from cea_agent.upstream.parser import (
    detect_fault,
    parse_consumption_response,
    parse_contract_response,
    parse_debt_response,
)

logger = logging.getLogger(__name__)

CONTRACT_ENDPOINT = "InterfazGenericaContratacionWS"
DEBT_ENDPOINT = "InterfazGenericaGestionDeudaWS"
CONSUMPTION_ENDPOINT = "InterfazOficinaVirtualClientesWS"

_SOAP_ENV = "http://schemas.xmlsoap.org/soap/envelope/"
_WSSE = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-secext-1.0.xsd"
_WSU = "http://docs.oasis-open.org/wss/2004/01/oasis-200401-wss-wssecurity-utility-1.0.xsd"
_PASSWORD_TYPE = (
    "http://docs.oasis-open.org/wss/2004/01/"
    "oasis-200401-wss-username-token-profile-1.0#PasswordText"
)


def _security_header(username: str, password: str) -> str:
    return (
        "<soapenv:Header>"
        '<wsse:Security mustUnderstand="1">'
        f'<wsse:UsernameToken wsu:Id="UsernameToken-{escape(username)}">'
        f"<wsse:Username>{escape(username)}</wsse:Username>"
        f'<wsse:Password Type="{_PASSWORD_TYPE}">{escape(password)}</wsse:Password>'
        "</wsse:UsernameToken>"
        "</wsse:Security>"
        "</soapenv:Header>"
    )


def contract_envelope(contract_number: str) -> str:
    return (
        f'<soapenv:Envelope xmlns:soapenv="{_SOAP_ENV}" '
        'xmlns:occ="http://occamWS.ejb.negocio.occam.agbar.com">'
        "<soapenv:Header/>"
        "<soapenv:Body>"
        "<occ:consultaDetalleContrato>"
        f"<numeroContrato>{escape(contract_number)}</numeroContrato>"
        "<idioma>es</idioma>"
        "</occ:consultaDetalleContrato>"
        "</soapenv:Body>"
        "</soapenv:Envelope>"
    )


def debt_envelope(contract_number: str, explotacion: str, username: str, password: str) -> str:
    return (
        f'<soapenv:Envelope xmlns:soapenv="{_SOAP_ENV}" '
        'xmlns:int="http://interfazgenericagestiondeuda.occamcxf.occam.agbar.com/" '
        f'xmlns:wsse="{_WSSE}" xmlns:wsu="{_WSU}">'
        f"{_security_header(username, password)}"
        "<soapenv:Body>"
        "<int:getDeuda>"
        "<tipoIdentificador>CONTRATO</tipoIdentificador>"
        f"<valor>{escape(contract_number)}</valor>"
        f"<explotacion>{escape(explotacion)}</explotacion>"
        "<idioma>es</idioma>"
        "</int:getDeuda>"
        "</soapenv:Body>"
        "</soapenv:Envelope>"
    )


def consumption_envelope(
    contract_number: str, explotacion: str, username: str, password: str
) -> str:
    return (
        f'<soapenv:Envelope xmlns:soapenv="{_SOAP_ENV}" '
        'xmlns:occ="http://occamWS.ejb.negocio.occam.agbar.com" '
        f'xmlns:wsse="{_WSSE}" xmlns:wsu="{_WSU}">'
        f"{_security_header(username, password)}"
        "<soapenv:Body>"
        "<occ:getConsumos>"
        f"<explotacion>{escape(explotacion)}</explotacion>"
        f"<contrato>{escape(contract_number)}</contrato>"
        "<idioma>es</idioma>"
        "</occ:getConsumos>"
        "</soapenv:Body>"
        "</soapenv:Envelope>"
    )


def _is_fault_response(response: httpx.Response) -> bool:
    return detect_fault(response.text) is not None


class CeaSoapClient:
    """Async client for the CEA commercial web services."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        backoff: Optional[float] = None,
    ) -> None:
        cfg = settings.upstream
        self.base_url = (base_url or cfg.cea_base_url).rstrip("/")
        self.explotacion = cfg.cea_explotacion
        self.username = cfg.cea_username
        self.password = cfg.cea_password or cfg.cea_username
        self.backoff = backoff
        if http_client is None:
            http_client = httpx.AsyncClient(proxy=cfg.proxy_url or None)
        self._client = http_client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, endpoint: str, envelope: str) -> str:
        response = await fetch_with_retry(
            self._client,
            "POST",
            f"{self.base_url}/{endpoint}",
            content=envelope.encode("utf-8"),
            headers={"Content-Type": "text/xml;charset=UTF-8"},
            backoff=self.backoff,
            accept_response=_is_fault_response,
        )
        return response.text

    async def _call(
        self,
        endpoint: str,
        envelope: str,
        parse: Callable[[str], UpstreamResult],
    ) -> UpstreamResult:
        try:
            body = await self._post(endpoint, envelope)
        except UpstreamHTTPError as e:
            logger.error("%s returned HTTP %d", endpoint, e.status_code)
            return UpstreamFailure(
                error=str(e), kind=ErrorKind.HTTP_STATUS, raw_response=e.body
            )
        except UpstreamError as e:
            logger.error("%s unreachable: %s", endpoint, e)
            return UpstreamFailure(error=str(e), kind=ErrorKind.NETWORK)
        return parse(body)

    async def get_debt(self, contract_number: str) -> DebtResult:
        envelope = debt_envelope(contract_number, self.explotacion, self.username, self.password)
        return await self._call(
            DEBT_ENDPOINT, envelope, lambda body: parse_debt_response(body, contract_number)
        )

    async def get_consumption(self, contract_number: str) -> ConsumptionResult:
        envelope = consumption_envelope(
            contract_number, self.explotacion, self.username, self.password
        )
        return await self._call(
            CONSUMPTION_ENDPOINT,
            envelope,
            lambda body: parse_consumption_response(body, contract_number),
        )

    async def get_contract(self, contract_number: str) -> ContractResult:
        return await self._call(
            CONTRACT_ENDPOINT,
            contract_envelope(contract_number),
            lambda body: parse_contract_response(body, contract_number),
        )
