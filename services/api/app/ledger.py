import logging

import httpx

from app.did import indy_key_from_seed, qualified_did
from app.errors import ServiceError, UpstreamFailure, ValidationError
from app.models import NetworkOption

logger = logging.getLogger(__name__)


def parse_network(network) -> NetworkOption:
    try:
        return NetworkOption(network)
    except ValueError as exc:
        raise ValidationError(f"Unsupported network: {network}") from exc


class LedgerRegistrar:
    """Registers the agent's DID on one of the supported testnets and
    imports the matching key into the agent wallet."""

    def __init__(self, settings, transport=None):
        self.settings = settings
        self.transport = transport

    def register(self, runtime, network, seed: str) -> str:
        network = parse_network(network)
        logger.info("registering DID", extra={"network": network.value})
        if network is NetworkOption.BCOVRIN_TESTNET:
            nym = self._register_bcovrin(seed)
        else:
            nym = self._register_indicio(seed)
        did = self._import_did(runtime, network.value, nym, seed)
        logger.info("DID registration completed: %s", did, extra={"network": network.value})
        return did

    def _post(self, url: str, body: dict, label: str) -> dict:
        try:
            with httpx.Client(timeout=self.settings.http_timeout_seconds, transport=self.transport) as client:
                response = client.post(url, json=body)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamFailure(f"{label} DID registration failed: {exc}", {"url": url}) from exc

    def _register_bcovrin(self, seed: str) -> str:
        doc = self._post(
            self.settings.nym_bcovrin_url,
            {"role": "ENDORSER", "alias": "Alias", "seed": seed},
            "Bcovrin",
        )
        if not doc.get("did"):
            raise UpstreamFailure("Invalid response from Bcovrin registration", {"response": doc})
        return doc["did"]

    def _register_indicio(self, seed: str) -> str:
        key = indy_key_from_seed(seed)
        doc = self._post(
            self.settings.nym_indicio_url,
            {"network": "testnet", "did": key.did, "verkey": key.verkey},
            "Indicio",
        )
        if doc.get("statusCode") != 200:
            raise UpstreamFailure("Indicio DID registration failed", {"response": doc})
        return key.did

    def _import_did(self, runtime, method: str, nym: str, seed: str) -> str:
        try:
            created = runtime.create_did(seed)
        except ServiceError as exc:
            raise UpstreamFailure(f"DID import failed: {exc.message}", exc.details) from exc
        if created.get("did") != nym:
            raise UpstreamFailure(
                "DID import failed: wallet key does not match the registered DID",
                {"expected": nym, "actual": created.get("did")},
            )
        return qualified_did(method, nym)
