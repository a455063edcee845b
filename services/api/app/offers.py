"""Credential offers (issue-credential v2, AnonCreds format)."""
import logging
from typing import Any, Dict, NamedTuple, Optional

from app.anoncreds import to_unqualified
from app.models import AttributeSet, AutoAccept, CredentialDefinition, StartedExchange
from app.utils import now_ts

logger = logging.getLogger(__name__)

CRED_PREVIEW_TYPE = "https://didcomm.org/issue-credential/2.0/credential-preview"


class ExpiryPolicy:
    """Computes the "Expiry" claim as now + window (seconds since epoch)."""

    def __init__(self, window_seconds: int, clock=now_ts):
        self.window_seconds = window_seconds
        self.clock = clock

    def now(self) -> int:
        return self.clock()

    def expiry(self) -> int:
        return self.clock() + self.window_seconds


class OfferPayload(NamedTuple):
    cred_def_id: str
    body: Dict[str, Any]
    connection_id: Optional[str] = None

    @property
    def connectionless(self) -> bool:
        return self.connection_id is None


class OfferBuilder:
    def __init__(self, runtime, registry=None):
        self.runtime = runtime
        self.registry = registry

    def build_offer(
        self,
        definition: CredentialDefinition,
        attributes: AttributeSet,
        auto_accept: AutoAccept = AutoAccept.ALWAYS,
        connection_id: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> OfferPayload:
        if self.registry is not None:
            attributes.check_schema(self.registry.schema_attributes(definition.schema_id))
        cred_def_id = to_unqualified(definition.id)
        body = {
            "auto_issue": auto_accept.automatic,
            "auto_remove": False,
            "comment": comment,
            "credential_preview": {
                "@type": CRED_PREVIEW_TYPE,
                "attributes": attributes.to_preview(),
            },
            "filter": {"anoncreds": {"cred_def_id": cred_def_id}},
        }
        if connection_id is not None:
            body["connection_id"] = connection_id
        return OfferPayload(cred_def_id, body, connection_id)

    def issue(self, payload: OfferPayload) -> StartedExchange:
        """Submit the offer; returns the new record id, its state and the offer message."""
        if payload.connectionless:
            record = self.runtime.create_offer(payload.body)
        else:
            record = self.runtime.send_offer(payload.body)
        record_id = record["cred_ex_id"]
        logger.info(
            "credential offer created for %s",
            payload.cred_def_id,
            extra={"exchange_id": record_id, "record_kind": "credential"},
        )
        return StartedExchange(record_id, record.get("state"), record.get("cred_offer") or {})
