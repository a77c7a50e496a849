"""IP reputation lookups against ipapi.is."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Final

import httpx

from .errors import ReputationCheckFailure

log: Final = logging.getLogger("veribot")

IPAPI_URL: Final[str] = "https://api.ipapi.is/"
SUSPICIOUS_FLAGS: Final[tuple[str, ...]] = (
    "is_proxy",
    "is_vpn",
    "is_datacenter",
    "is_tor",
    "is_abuser",
)


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ReputationCheckFailure(
            f"Malformed {name!r} in reputation payload: {type(value).__name__}"
        )
    return value


@dataclass(slots=True)
class ReputationReport:
    suspicious: bool
    country: str = "Unknown"
    city: str = "Unknown"
    isp: str = "Unknown"
    org: str = "Unknown"
    hosting: bool = False
    mobile: bool = False

    @classmethod
    def fail_closed(cls) -> ReputationReport:
        return cls(suspicious=True)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ReputationReport:
        location = _section(data, "location")
        company = _section(data, "company")
        asn = _section(data, "asn")
        return cls(
            suspicious=any(data.get(flag) is True for flag in SUSPICIOUS_FLAGS),
            country=location.get("country") or "Unknown",
            city=location.get("city") or "Unknown",
            isp=company.get("name") or "Unknown",
            org=asn.get("org") or "Unknown",
            hosting=bool(data.get("is_datacenter", False)),
            mobile=bool(data.get("is_mobile", False)),
        )


class ReputationChecker:
    """Classify an address as trusted or suspicious.

    The checker fails closed: if the provider cannot be reached or returns
    something unreadable the address is reported as suspicious.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        *,
        url: str = IPAPI_URL,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._url = url

    async def _fetch(self, ip_address: str) -> dict[str, Any]:
        try:
            response = await self._client.get(
                self._url, params={"q": ip_address, "key": self._api_key}
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ReputationCheckFailure(
                f"Reputation lookup for {ip_address} failed: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise ReputationCheckFailure(
                f"Unexpected reputation payload for {ip_address}: {type(data).__name__}"
            )
        return data

    async def check(self, ip_address: str) -> ReputationReport:
        try:
            report = ReputationReport.from_payload(await self._fetch(ip_address))
        except ReputationCheckFailure as exc:
            log.error("%s; treating address as suspicious", exc)
            return ReputationReport.fail_closed()

        if report.suspicious:
            log.info(
                "Address %s flagged by reputation service (%s, %s)",
                ip_address,
                report.org,
                report.country,
            )
        return report


__all__ = ["ReputationChecker", "ReputationReport"]
