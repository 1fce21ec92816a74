"""
FedEx address validation.

Outside production the service does not call FedEx: it echoes the address
back and applies a local format check instead.
"""
import logging
from typing import Any, Dict, Optional

import requests

from ..utils.validators import address_format_ok


class AddressValidationError(RuntimeError):
    pass


class FedExAddressService:
    def __init__(
        self,
        api_key: str,
        api_secret: str,
        *,
        api_url: str = "https://apis-sandbox.fedex.com",
        production: bool = False,
        timeout: float = 15.0,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_url = api_url.rstrip("/")
        self.production = production
        self.timeout = timeout
        self._http = http or requests.Session()
        self.logger = logging.getLogger(__name__)

    def _token(self) -> str:
        if not self.api_key or not self.api_secret:
            raise AddressValidationError("FedEx API credentials not configured")
        try:
            resp = self._http.post(
                f"{self.api_url}/oauth/token",
                data={
                    "grant_type": "client_credentials",
                    "client_id": self.api_key,
                    "client_secret": self.api_secret,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            token = resp.json().get("access_token")
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise AddressValidationError(f"FedEx authentication failed: {exc}") from exc
        if not token:
            raise AddressValidationError("FedEx authentication failed: no access token")
        return token

    @staticmethod
    def _echo(address: Dict[str, str]) -> Dict[str, Any]:
        return {
            "streetLines": [line for line in (address.get("streetLine1"), address.get("streetLine2")) if line],
            "city": address.get("city") or "",
            "state": address.get("state") or "",
            "zipCode": address.get("zipCode") or "",
            "country": address.get("country") or "US",
        }

    def validate(self, address: Dict[str, str]) -> Dict[str, Any]:
        if not (address.get("streetLine1") or "").strip():
            raise ValueError("streetLine1 is required")

        if not self.production:
            ok = address_format_ok(
                address.get("streetLine1", ""),
                address.get("city", ""),
                address.get("state", ""),
                address.get("zipCode", ""),
            )
            result = {"isValid": ok, "classification": "residential", "suggestedAddress": self._echo(address)}
            if not ok:
                result["message"] = "Address format looks incomplete. Please check street, city, state and ZIP."
            return result

        token = self._token()
        street_lines = [line for line in (address.get("streetLine1"), address.get("streetLine2")) if line]
        body = {
            "addressesToValidate": [
                {
                    "address": {
                        "streetLines": street_lines,
                        "city": address.get("city"),
                        "stateOrProvinceCode": address.get("state"),
                        "postalCode": address.get("zipCode"),
                        "countryCode": address.get("country") or "US",
                    }
                }
            ]
        }
        try:
            resp = self._http.post(
                f"{self.api_url}/address/v1/addresses/resolve",
                json=body,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            self.logger.error("FedEx address validation failed: %s", exc)
            raise AddressValidationError(f"Address validation failed: {exc}") from exc

        resolved = ((data.get("output") or {}).get("resolvedAddresses") or [None])[0]
        if not resolved:
            return {"isValid": False, "classification": "unknown", "message": "Address could not be resolved"}

        attrs = {a.get("name"): a.get("value") for a in resolved.get("attributes") or []}
        is_valid = (
            attrs.get("AddressState") == "STANDARDIZED"
            and attrs.get("DPV") == "true"
            and attrs.get("InterpolatedAddress") != "true"
        )
        result = {
            "isValid": is_valid,
            "classification": str(resolved.get("classification") or "unknown").lower(),
            "suggestedAddress": {
                "streetLines": resolved.get("streetLinesToken") or street_lines,
                "city": resolved.get("cityToken") or address.get("city") or "",
                "state": resolved.get("stateOrProvinceCodeToken") or address.get("state") or "",
                "zipCode": resolved.get("postalCodeToken") or address.get("zipCode") or "",
                "country": resolved.get("countryCodeToken") or address.get("country") or "US",
            },
        }
        if not is_valid:
            result["message"] = "Address could not be fully verified. Please review the suggested address."
        return result
