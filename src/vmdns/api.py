#!/usr/bin/env python3
"""
API Client Module

HTTP client with retry logic and a Cloudflare DNS client for zone lookup
and A record create/update.

Created: 2026-10-18
Author: Manuel Ziel
License: MIT
"""

################################################################################
# IMPORTS & DEPENDENCIES
################################################################################

# Standard library imports
import time
import logging
from typing import Optional, Dict, Any, List, Callable

# Third-party imports
import requests

# Internal imports
from .exceptions import APIError, AuthenticationError

################################################################################
# CONSTANTS
################################################################################

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
AUTH_STATUS_CODES = frozenset({401, 403})

################################################################################
# HTTP CLIENT CLASS - API Communication with Retry Logic
################################################################################

class HTTPClient:
    """HTTP client with retry logic and status-code classification."""

    def __init__(self, base_url: Optional[str] = None, timeout: int = 10, retries: int = 3,
                 logger: Optional[Any] = None, sleep: Callable[[float], None] = time.sleep) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.retries = max(1, retries)
        self.sleep = sleep

        if logger:
            self.logger = logger
        else:
            self.logger = logging.getLogger(__name__)

    def request_with_retry(self, method: str, endpoint: Optional[str] = None, url: Optional[str] = None,
                           headers: Optional[Dict[str, str]] = None, json_data: Optional[Dict[str, Any]] = None,
                           **kwargs: Any) -> requests.Response:
        """Make HTTP request with exponential backoff. Returns a 2xx response or raises APIError."""
        if url:
            final_url = url
        elif self.base_url and endpoint:
            final_url = f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        elif endpoint:
            final_url = endpoint
        else:
            raise ValueError("Either 'url' or 'endpoint' (with base_url) must be provided")

        retries = kwargs.pop('retries', self.retries)
        timeout = kwargs.pop('timeout', self.timeout)
        method = method.upper()
        last_error: Optional[APIError] = None

        for attempt in range(retries):
            try:
                if method == "GET":
                    response = requests.get(final_url, headers=headers, timeout=timeout, **kwargs)
                elif method == "POST":
                    response = requests.post(final_url, headers=headers, json=json_data, timeout=timeout, **kwargs)
                elif method == "PUT":
                    response = requests.put(final_url, headers=headers, json=json_data, timeout=timeout, **kwargs)
                else:
                    raise ValueError(f"Unsupported HTTP method: {method}")
            except requests.exceptions.Timeout:
                self.logger.warning(f"Request timeout (attempt {attempt + 1}/{retries}) - {final_url}")
                last_error = APIError(f"{method} {final_url} timed out", retryable=True)
            except requests.exceptions.RequestException as e:
                self.logger.warning(f"Request failed (attempt {attempt + 1}/{retries}): {e}")
                last_error = APIError(f"{method} {final_url} failed: {e}", retryable=True)
            else:
                self.logger.debug(f"{method} {final_url} - Status: {response.status_code}")

                if response.ok:
                    return response
                if response.status_code in AUTH_STATUS_CODES:
                    raise AuthenticationError(
                        f"Authentication failed ({response.status_code}) - check API token permissions",
                        status_code=response.status_code,
                        body=response.text,
                    )
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    raise APIError(
                        f"{method} {final_url} failed: {response.status_code} - {response.text}",
                        status_code=response.status_code,
                        body=response.text,
                    )

                self.logger.warning(
                    f"Provider returned {response.status_code} (attempt {attempt + 1}/{retries}) - {final_url}"
                )
                last_error = APIError(
                    f"{method} {final_url} failed: {response.status_code} - {response.text}",
                    status_code=response.status_code,
                    body=response.text,
                    retryable=True,
                )

            if attempt < retries - 1:  # Don't sleep on last attempt
                self.sleep(2 ** attempt)  # Exponential backoff

        self.logger.error(f"All {retries} retry attempts failed for {method} {final_url}")
        raise last_error

    ################################################################################
    # HTTP METHOD CONVENIENCE WRAPPERS - Simplified API
    ################################################################################

    def get(self, endpoint: Optional[str] = None, url: Optional[str] = None, **kwargs: Any) -> requests.Response:
        """GET request wrapper."""
        return self.request_with_retry("GET", endpoint=endpoint, url=url, **kwargs)

    def post(self, endpoint: Optional[str] = None, url: Optional[str] = None,
             json_data: Optional[Dict[str, Any]] = None, **kwargs: Any) -> requests.Response:
        """POST request wrapper."""
        return self.request_with_retry("POST", endpoint=endpoint, url=url, json_data=json_data, **kwargs)

    def put(self, endpoint: Optional[str] = None, url: Optional[str] = None,
            json_data: Optional[Dict[str, Any]] = None, **kwargs: Any) -> requests.Response:
        """PUT request wrapper."""
        return self.request_with_retry("PUT", endpoint=endpoint, url=url, json_data=json_data, **kwargs)

################################################################################
# CLOUDFLARE DNS API CLIENT - DNS Provider Integration
################################################################################

class CloudflareClient:
    """Cloudflare v4 API client for zone lookup and A record management."""

    def __init__(self, api_token: str, base_url: str = "https://api.cloudflare.com/client/v4",
                 api_email: Optional[str] = None, auth_mode: str = "token", timeout: int = 30,
                 retries: int = 3, logger: Optional[Any] = None, http: Optional[HTTPClient] = None) -> None:
        """Initialize client. auth_mode 'token' sends a bearer token, 'global_key' sends email + key."""
        self.base_url = base_url
        self.logger = logger if logger else logging.getLogger(__name__)

        self.client = http if http else HTTPClient(
            base_url=base_url,
            timeout=timeout,
            retries=retries,
            logger=self.logger
        )

        self.headers = {
            "accept": "application/json",
            "Content-Type": "application/json"
        }
        if auth_mode == "global_key":
            self.headers["X-Auth-Email"] = api_email or ""
            self.headers["X-Auth-Key"] = api_token
        else:
            self.headers["Authorization"] = f"Bearer {api_token}"

    def list_zones(self, name: str) -> List[Dict[str, Any]]:
        """List zones matching an exact domain name."""
        self.logger.debug(f"Fetching zones named {name} from Cloudflare...")
        response = self.client.get(endpoint="/zones", headers=self.headers, params={"name": name})
        return self._result(response) or []

    def list_a_records(self, zone_id: str, fqdn: str) -> List[Dict[str, Any]]:
        """List A records with the given FQDN in a zone."""
        self.logger.debug(f"Fetching A records for {fqdn} in zone {zone_id}")
        response = self.client.get(
            endpoint=f"/zones/{zone_id}/dns_records",
            headers=self.headers,
            params={"type": "A", "name": fqdn},
        )
        return self._result(response) or []

    def create_record(self, zone_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Create a DNS record. Returns the created record."""
        self.logger.debug(f"Creating {record.get('type')} record {record.get('name')} in zone {zone_id}")
        response = self.client.post(
            endpoint=f"/zones/{zone_id}/dns_records",
            headers=self.headers,
            json_data=record,
        )
        return self._result(response) or {}

    def update_record(self, zone_id: str, record_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Overwrite an existing DNS record. Returns the updated record."""
        self.logger.debug(f"Updating record {record_id} in zone {zone_id} to {record.get('content')}")
        response = self.client.put(
            endpoint=f"/zones/{zone_id}/dns_records/{record_id}",
            headers=self.headers,
            json_data=record,
        )
        return self._result(response) or {}

    def build_record_dict(self, record_name: str, record_type: str, content: str,
                          ttl: int, proxied: bool = False) -> Dict[str, Any]:
        """Build API record dictionary for Cloudflare.

        Args:
            record_name: Record name relative to the zone (e.g., web1)
            record_type: Record type (A)
            content: IP address
            ttl: Time to live in seconds
            proxied: Whether Cloudflare proxies traffic for the record

        Returns:
            Dictionary formatted for the dns_records endpoint
        """
        return {
            "type": record_type,
            "name": record_name,
            "content": content,
            "ttl": ttl,
            "proxied": proxied
        }

    def _result(self, response: requests.Response) -> Any:
        """Unwrap the 'result' member of a Cloudflare response envelope."""
        try:
            payload = response.json()
        except ValueError:
            raise APIError(
                f"Invalid JSON from provider: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return payload.get("result")
