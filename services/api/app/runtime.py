"""HTTP client for the agent runtime (ACA-Py admin API)."""
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.errors import NotFound, UpstreamFailure

logger = logging.getLogger(__name__)

DIDEXCHANGE_PROTOCOL = "https://didcomm.org/didexchange/1.0"


class AgentRuntime:
    """Thin wrapper over the admin API of a running ACA-Py agent.

    Every call either returns the decoded JSON body or raises a taxonomy
    error: 404 from the agent becomes NotFound, any other failure becomes
    UpstreamFailure.
    """

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 30.0, transport=None):
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self.client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        self.client.close()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                raise NotFound(f"Record not found: {path}", {"path": path}) from exc
            raise UpstreamFailure(
                f"agent runtime {method} {path} returned {exc.response.status_code}: {exc.response.text}",
                {"path": path, "status": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamFailure(f"agent runtime {method} {path} failed: {exc}", {"path": path}) from exc
        if not response.content:
            return {}
        return response.json()

    def get(self, path: str, params: Optional[dict] = None) -> Dict[str, Any]:
        return self._request("GET", path, params=params)

    def post(self, path: str, json: Optional[dict] = None, params: Optional[dict] = None) -> Dict[str, Any]:
        return self._request("POST", path, json=json or {}, params=params)

    # status

    def is_ready(self) -> bool:
        return bool(self.get("/status/ready").get("ready"))

    def default_endpoints(self) -> List[str]:
        config = self.get("/status/config").get("config") or {}
        endpoints = []
        if config.get("default_endpoint"):
            endpoints.append(config["default_endpoint"])
        endpoints.extend(config.get("additional_endpoints") or [])
        return endpoints

    # wallet

    def create_did(self, seed: str) -> Dict[str, Any]:
        body = {"method": "sov", "seed": seed, "options": {"key_type": "ed25519"}}
        return self.post("/wallet/did/create", json=body).get("result") or {}

    # anoncreds

    def created_credential_definition_ids(self) -> List[str]:
        return list(self.get("/anoncreds/credential-definitions").get("credential_definition_ids") or [])

    def get_credential_definition(self, cred_def_id: str) -> Dict[str, Any]:
        return self.get(f"/anoncreds/credential-definition/{cred_def_id}")

    def get_schema(self, schema_id: str) -> Dict[str, Any]:
        return self.get(f"/anoncreds/schema/{schema_id}")

    # issue-credential v2

    def create_offer(self, body: dict) -> Dict[str, Any]:
        return self.post("/issue-credential-2.0/create-offer", json=body)

    def send_offer(self, body: dict) -> Dict[str, Any]:
        return self.post("/issue-credential-2.0/send-offer", json=body)

    def get_credential_record(self, cred_ex_id: str) -> Dict[str, Any]:
        detail = self.get(f"/issue-credential-2.0/records/{cred_ex_id}")
        return detail.get("cred_ex_record") or detail

    # present-proof v2

    def create_proof_request(self, body: dict) -> Dict[str, Any]:
        return self.post("/present-proof-2.0/create-request", json=body)

    def send_proof_request(self, body: dict) -> Dict[str, Any]:
        return self.post("/present-proof-2.0/send-request", json=body)

    def get_proof_record(self, pres_ex_id: str) -> Dict[str, Any]:
        return self.get(f"/present-proof-2.0/records/{pres_ex_id}")

    # out-of-band and connections

    def create_invitation(self, attachments: List[dict], multi_use: bool) -> Dict[str, Any]:
        body = {"attachments": attachments, "use_public_did": False}
        if not attachments:
            body["handshake_protocols"] = [DIDEXCHANGE_PROTOCOL]
        params = {"auto_accept": "true", "multi_use": "true" if multi_use else "false"}
        return self.post("/out-of-band/create-invitation", json=body, params=params)

    def find_connections(self, invitation_msg_id: str) -> List[Dict[str, Any]]:
        return list(self.get("/connections", params={"invitation_msg_id": invitation_msg_id}).get("results") or [])
