"""
Credential provider for the Freshdesk API
Derives the base endpoint and Basic auth header from configuration
"""

import base64
import re
from typing import Dict

FRESHDESK_SUFFIX = ".freshdesk.com"

_SUBDOMAIN = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?$")
_FULL_DOMAIN = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?\.freshdesk\.com$")
_IPV4 = re.compile(r"^\d+\.\d+\.\d+\.\d+$")


def normalize_domain(domain: str) -> str:
    """Strip scheme and trailing slashes from a configured domain"""
    clean = (domain or "").strip()
    clean = clean.replace("https://", "").replace("http://", "")
    return clean.rstrip("/")


def is_valid_domain(domain: str) -> bool:
    """Accept `company` or `company.freshdesk.com`, nothing else"""
    if not domain or not domain.strip():
        return False

    if domain == "localhost" or _IPV4.match(domain):
        return False

    if "--" in domain:
        return False

    return bool(_SUBDOMAIN.match(domain) or _FULL_DOMAIN.match(domain))


class CredentialProvider:
    """
    Builds the Freshdesk endpoint and authentication headers.

    Freshdesk uses HTTP Basic auth with the API key as username and a dummy
    `X` password. The key is never logged; use `masked_key()` in messages.
    """

    def __init__(self, domain: str, api_key: str):
        if not api_key or not api_key.strip():
            raise ValueError("API key is required for Freshdesk authentication")

        clean_domain = normalize_domain(domain)
        if not clean_domain:
            raise ValueError("Domain is required for Freshdesk authentication")

        if not is_valid_domain(clean_domain):
            raise ValueError(
                "Invalid domain format. Expected format: yourcompany.freshdesk.com or yourcompany"
            )

        self._domain = clean_domain
        self._api_key = api_key

    @property
    def domain(self) -> str:
        return self._domain

    def base_url(self) -> str:
        full_domain = self._domain if self._domain.endswith(FRESHDESK_SUFFIX) else f"{self._domain}{FRESHDESK_SUFFIX}"
        return f"https://{full_domain}/api/v2"

    def auth_header(self) -> Dict[str, str]:
        auth_string = f"{self._api_key}:X"
        encoded_auth = base64.b64encode(auth_string.encode()).decode()
        return {
            "Authorization": f"Basic {encoded_auth}",
            "Content-Type": "application/json",
        }

    def masked_key(self) -> str:
        if len(self._api_key) <= 8:
            return "****"
        return f"{self._api_key[:4]}...{self._api_key[-4:]}"

    def __repr__(self) -> str:
        return f"CredentialProvider(domain={self._domain!r}, api_key={self.masked_key()!r})"
