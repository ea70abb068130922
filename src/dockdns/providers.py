"""DNS provider implementations and the provider registry.

Supported DNS Providers:
    - cloudflare: Cloudflare v4 REST API (zone-scoped API token)
    - adguard: AdGuard Home DNS rewrites
"""

from __future__ import annotations

import ipaddress
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from urllib3.util.retry import Retry

from dockdns.errors import ProviderConfigError, ProviderError
from dockdns.records import Provider, Record, RecordType, zone_for

if TYPE_CHECKING:
    from dockdns.config import ZoneConfig

logger = logging.getLogger(__name__)

CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"


def _build_session() -> requests.Session:
    """Session that retries transient server errors and connection failures."""
    session = requests.Session()
    retry = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=[429, 502, 503, 504],
        allowed_methods=["GET", "POST", "PUT", "DELETE"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def _record_type_for(answer: str) -> Optional[RecordType]:
    try:
        address = ipaddress.ip_address(answer)
    except ValueError:
        return None
    return RecordType.AAAA if address.version == 6 else RecordType.A


# =============================================================================
# Cloudflare
# =============================================================================


class CloudflareProvider(Provider):
    """Cloudflare DNS provider implementation."""

    def __init__(
        self,
        zone_name: str,
        api_token: str,
        zone_id: str,
        *,
        api_url: str = CLOUDFLARE_API_URL,
        timeout: float = 10.0,
        log: Optional[logging.Logger] = None,
    ):
        self._zone_name = zone_name
        self._zone_id = zone_id
        self._url = f"{api_url.rstrip('/')}/zones/{zone_id}/dns_records"
        self._timeout = timeout
        self._log = log or logger
        self._session = _build_session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
            }
        )

    @property
    def name(self) -> str:
        return "Cloudflare"

    def _request(
        self, method: str, url: str, *, allow_missing: bool = False, **kwargs: Any
    ) -> Optional[Dict[str, Any]]:
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"{self.name} {method} {url} failed: {e}") from e

        if allow_missing and response.status_code == 404:
            return None

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if not response.ok or not data.get("success", False):
            errors = data.get("errors") or []
            messages = ", ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
            )
            raise ProviderError(
                f"{self.name} {method} {url} returned {response.status_code}: "
                f"{messages or 'unknown error'}"
            )
        return data

    def _to_record(self, item: Any) -> Optional[Record]:
        if not isinstance(item, dict):
            return None
        try:
            record_type = RecordType(item.get("type"))
        except ValueError:
            return None
        name = item.get("name")
        content = item.get("content")
        if not isinstance(name, str) or not isinstance(content, str):
            self._log.warning(f"Skipping malformed record: {item}")
            return None
        proxied = bool(item.get("proxied", False))
        # Proxied records always report the automatic TTL.
        ttl = None if proxied else item.get("ttl")
        return Record(
            name=name,
            type=record_type,
            value=content,
            ttl=int(ttl) if ttl is not None else None,
            proxied=proxied,
            id=item.get("id"),
        )

    def list(self) -> List[Record]:
        records: List[Record] = []
        page = 1
        while True:
            data = self._request("GET", self._url, params={"page": page, "per_page": 100})
            for item in data.get("result") or []:
                record = self._to_record(item)
                if record is not None:
                    records.append(record)
            info = data.get("result_info") or {}
            if page >= int(info.get("total_pages") or 1):
                break
            page += 1
        return records

    def _find_id(self, record: Record) -> Optional[str]:
        data = self._request(
            "GET", self._url, params={"name": record.name, "type": record.type.value}
        )
        results = data.get("result") or []
        return results[0].get("id") if results else None

    def upsert(self, record: Record) -> None:
        payload = {
            "type": record.type.value,
            "name": record.name,
            "content": record.value,
            "ttl": 1 if record.proxied else (record.ttl or 1),
            "proxied": bool(record.proxied),
        }
        record_id = record.id or self._find_id(record)
        if record_id:
            self._request("PUT", f"{self._url}/{record_id}", json=payload)
            self._log.debug(f"Updated {self.name} record {record}")
        else:
            self._request("POST", self._url, json=payload)
            self._log.debug(f"Created {self.name} record {record}")

    def delete(self, record: Record) -> None:
        record_id = record.id or self._find_id(record)
        if not record_id:
            self._log.debug(f"{self.name} record {record} already absent")
            return
        if self._request("DELETE", f"{self._url}/{record_id}", allow_missing=True) is None:
            self._log.debug(f"{self.name} record {record} already absent")


# =============================================================================
# AdGuard Home
# =============================================================================


class AdGuardProvider(Provider):
    """AdGuard Home DNS rewrite provider implementation.

    Rewrites carry neither a record type nor a TTL. The type is inferred from
    the answer and rewrites whose answer is not an IP address are ignored.
    """

    def __init__(
        self,
        zone_name: str,
        url: str,
        username: str = "",
        password: str = "",
        *,
        timeout: float = 5.0,
        log: Optional[logging.Logger] = None,
    ):
        self._zone_name = zone_name
        self._url = url.rstrip("/")
        self._timeout = timeout
        self._log = log or logger
        self._session = _build_session()
        if username and password:
            self._session.auth = HTTPBasicAuth(username, password)

    @property
    def name(self) -> str:
        return "AdGuard Home"

    def _post(self, path: str, data: Dict[str, str]) -> requests.Response:
        try:
            return self._session.post(f"{self._url}{path}", json=data, timeout=self._timeout)
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"{self.name} POST {path} failed: {e}") from e

    def list(self) -> List[Record]:
        try:
            response = self._session.get(f"{self._url}/control/rewrite/list", timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise ProviderError(f"Failed to get records from {self.name}: {e}") from e

        if not isinstance(data, list):
            raise ProviderError(
                f"Unexpected response format from {self.name}: "
                f"expected list, got {type(data).__name__}"
            )

        records = []
        for r in data:
            domain = r.get("domain") if isinstance(r, dict) else None
            answer = r.get("answer") if isinstance(r, dict) else None
            if not isinstance(domain, str) or not isinstance(answer, str):
                self._log.warning(f"Skipping malformed record: {r}")
                continue
            if zone_for(domain, [self._zone_name]) is None:
                continue
            record_type = _record_type_for(answer)
            if record_type is None:
                continue
            records.append(Record(name=domain, type=record_type, value=answer))
        return records

    def upsert(self, record: Record) -> None:
        current = [r for r in self.list() if r.key == record.key]
        if any(r.value == record.value for r in current):
            stale = [r for r in current if r.value != record.value]
        else:
            stale = current
            response = self._post(
                "/control/rewrite/add", {"domain": record.name, "answer": record.value}
            )
            if not response.ok:
                raise ProviderError(
                    f"Failed to add rewrite {record} to {self.name}: HTTP {response.status_code}"
                )
        for old in stale:
            self.delete(old)

    def delete(self, record: Record) -> None:
        response = self._post(
            "/control/rewrite/delete", {"domain": record.name, "answer": record.value}
        )
        if response.status_code == 404:
            self._log.debug(f"{self.name} rewrite {record} already absent")
            return
        if not response.ok:
            raise ProviderError(
                f"Failed to delete rewrite {record} from {self.name}: HTTP {response.status_code}"
            )


# =============================================================================
# Provider Registry
# =============================================================================


def _require(zone: "ZoneConfig", key: str) -> str:
    value = str(zone.options.get(key) or "").strip()
    if not value:
        raise ProviderConfigError(
            f"Zone {zone.name}: '{key}' is required for provider '{zone.provider}'"
        )
    return value


def _cloudflare(zone: "ZoneConfig", log: Optional[logging.Logger]) -> Provider:
    return CloudflareProvider(
        zone.name,
        api_token=_require(zone, "apiToken"),
        zone_id=_require(zone, "zoneID"),
        log=log,
    )


def _adguard(zone: "ZoneConfig", log: Optional[logging.Logger]) -> Provider:
    username = str(zone.options.get("username") or "")
    password = str(zone.options.get("password") or "")
    if not username or not password:
        (log or logger).warning(
            f"Zone {zone.name}: AdGuard username/password not set. Using unauthenticated access."
        )
    return AdGuardProvider(
        zone.name, url=_require(zone, "url"), username=username, password=password, log=log
    )


PROVIDERS: Dict[str, Callable[["ZoneConfig", Optional[logging.Logger]], Provider]] = {
    "cloudflare": _cloudflare,
    "adguard": _adguard,
}


def create_provider(zone: "ZoneConfig", log: Optional[logging.Logger] = None) -> Provider:
    """Factory function to create the DNS provider configured for a zone."""
    factory = PROVIDERS.get(zone.provider)
    if factory is None:
        raise ProviderConfigError(
            f"Unsupported DNS provider '{zone.provider}' for zone {zone.name}. "
            f"Supported providers: {', '.join(sorted(PROVIDERS))}"
        )
    return factory(zone, log)
