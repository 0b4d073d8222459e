"""
Identity/catalog registration for the object gateway.

Registers the gateway's swift-compatible endpoint (public, internal and admin
variants) with the identity service catalog, and imports the identity
provider's certificates into the gateway's local trust store.
"""

import requests
import logging
from pathlib import Path
from typing import Dict, List, Optional

from cephstack.errors import CatalogError
from cephstack.services.admin import CommandRunner

logger = logging.getLogger(__name__)

ENDPOINT_INTERFACES = ("public", "internal", "admin")
SERVICE_NAME = "swift"
SERVICE_TYPE = "object-store"


def swift_endpoint_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/swift/v1"


class CatalogClient:
    """
    Get-or-create client for the identity service v3 catalog.
    
    Usage:
        client = CatalogClient("http://10.0.0.1/identity", token="secret")
        client.register_endpoint("http://10.0.0.1:8080/swift/v1", region="RegionOne")
    """
    
    def __init__(self, identity_url: str, token: Optional[str], timeout: int = 10):
        """
        Initialize catalog client.
        
        Args:
            identity_url: Identity service base URL (without /v3)
            token: Administrative token sent as X-Auth-Token
            timeout: Request timeout in seconds
        """
        self.identity_url = identity_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        if token:
            self.session.headers["X-Auth-Token"] = token
    
    def _request(self, method: str, path: str, **kwargs) -> Dict:
        url = f"{self.identity_url}/v3/{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as e:
            logger.error(f"Catalog request {method} {url} failed: HTTP {e.response.status_code}")
            raise CatalogError(f"{method} {url} failed: HTTP {e.response.status_code}") from e
        except requests.RequestException as e:
            logger.error(f"Catalog request {method} {url} failed: {e}")
            raise CatalogError(f"{method} {url} failed: {e}") from e
    
    def get_or_create_service(self, name: str = SERVICE_NAME, service_type: str = SERVICE_TYPE) -> str:
        """Return the id of the named service, creating it when absent"""
        services: List[Dict] = self._request("GET", "services", params={"type": service_type}).get("services", [])
        for service in services:
            if service.get("name") == name:
                return service["id"]
        
        created = self._request("POST", "services", json={
            "service": {
                "name": name,
                "type": service_type,
                "description": "Swift Service",
                "enabled": True,
            }
        })
        logger.info(f"Created catalog service {name} ({service_type})")
        return created["service"]["id"]
    
    def get_or_create_endpoint(self, service_id: str, interface: str, url: str, region: str) -> str:
        endpoints: List[Dict] = self._request(
            "GET", "endpoints", params={"service_id": service_id, "interface": interface}
        ).get("endpoints", [])
        for endpoint in endpoints:
            if endpoint.get("region_id", endpoint.get("region")) == region and endpoint.get("url") == url:
                return endpoint["id"]
        
        created = self._request("POST", "endpoints", json={
            "endpoint": {
                "service_id": service_id,
                "interface": interface,
                "url": url,
                "region_id": region,
            }
        })
        logger.info(f"Created {interface} endpoint {url} in {region}")
        return created["endpoint"]["id"]
    
    def register_endpoint(self, url: str, region: str) -> Dict[str, str]:
        """
        Register one URL under all three interfaces.
        
        Returns:
            Mapping interface -> endpoint id
        """
        service_id = self.get_or_create_service()
        return {
            interface: self.get_or_create_endpoint(service_id, interface, url, region)
            for interface in ENDPOINT_INTERFACES
        }


class TrustStore:
    """NSS database holding the identity provider's trust anchors"""

    # (nickname, trust flags)
    CA = ("ca", "TCu,Cu,Tuw")
    SIGNING = ("signing_cert", "P,P,P")

    def __init__(self, runner: CommandRunner, nss_dir: Path):
        self.runner = runner
        self.nss_dir = Path(nss_dir)

    def has(self, nickname: str) -> bool:
        result = self.runner.run(["certutil", "-d", self.nss_dir, "-L", "-n", nickname], check=False)
        return result.ok

    def import_certificate(self, cert_path: Path, nickname: str, trust: str) -> None:
        if self.has(nickname):
            logger.info(f"Certificate {nickname} already in {self.nss_dir}")
            return
        public_key = self.runner.run(["openssl", "x509", "-in", cert_path, "-pubkey"]).stdout
        self.runner.run(["certutil", "-d", self.nss_dir, "-A", "-n", nickname, "-t", trust], input=public_key)
        logger.info(f"Imported {cert_path} into {self.nss_dir} as {nickname}")

    def import_identity_certificates(self, ca_cert: Path, signing_cert: Path) -> None:
        self.runner.make_dirs(self.nss_dir)
        self.import_certificate(ca_cert, *self.CA)
        self.import_certificate(signing_cert, *self.SIGNING)
