import logging
from typing import Any, Dict, NamedTuple, Optional, Sequence

from app.anoncreds import to_unqualified
from app.errors import ValidationError
from app.models import AttributeRequest, AutoAccept, PredicateSpec, Restriction, StartedExchange

logger = logging.getLogger(__name__)

PROOF_REQUEST_VERSION = "1.0"


class ProofRequestPayload(NamedTuple):
    body: Dict[str, Any]
    connection_id: Optional[str] = None

    @property
    def connectionless(self) -> bool:
        return self.connection_id is None


class PredicateRequestBuilder:
    def __init__(self, runtime):
        self.runtime = runtime

    def build_predicate_request(
        self,
        cred_def_id: Optional[str],
        predicates: Sequence[PredicateSpec],
        connection_id: Optional[str] = None,
        name: str = "Proof request",
        comment: Optional[str] = None,
        attributes: Sequence[AttributeRequest] = (),
        auto_accept: AutoAccept = AutoAccept.ALWAYS,
    ) -> ProofRequestPayload:
        if not predicates and not attributes:
            raise ValidationError("a proof request needs at least one predicate or attribute")
        unqualified = to_unqualified(cred_def_id) if cred_def_id else None

        requested_predicates = {}
        for predicate in predicates:
            predicate = _bind(predicate, unqualified)
            if not predicate.restrictions:
                raise ValidationError(f"predicate {predicate.referent!r} has no credential definition restriction")
            _check_referent(predicate.referent, requested_predicates)
            requested_predicates[predicate.referent] = predicate.to_request()

        requested_attributes = {}
        for attribute in attributes:
            _check_referent(attribute.referent, requested_attributes)
            requested_attributes[attribute.referent] = attribute.to_request()

        body = {
            "auto_verify": auto_accept.automatic,
            "auto_remove": False,
            "will_confirm": True,
            "comment": comment,
            "presentation_request": {
                "anoncreds": {
                    "name": name,
                    "version": PROOF_REQUEST_VERSION,
                    "requested_attributes": requested_attributes,
                    "requested_predicates": requested_predicates,
                }
            },
        }
        if connection_id is not None:
            body["connection_id"] = connection_id
        return ProofRequestPayload(body, connection_id)

    def request(self, payload: ProofRequestPayload) -> StartedExchange:
        # connectionless requests still need an invitation before a holder sees them
        if payload.connectionless:
            record = self.runtime.create_proof_request(payload.body)
        else:
            record = self.runtime.send_proof_request(payload.body)
        record_id = record["pres_ex_id"]
        logger.info(
            "proof request created",
            extra={"exchange_id": record_id, "record_kind": "proof"},
        )
        return StartedExchange(record_id, record.get("state"), record.get("pres_request") or {})


def _check_referent(referent, existing):
    if referent in existing:
        raise ValidationError(f"duplicate referent: {referent}")


def _bind(predicate: PredicateSpec, cred_def_id: Optional[str]) -> PredicateSpec:
    """Restrict the predicate to the request's credential definition.

    Explicit restrictions are accepted only when they name that same
    definition, in either identifier form.
    """
    if cred_def_id is None:
        restrictions = [Restriction(cred_def_id=to_unqualified(r.cred_def_id)) for r in predicate.restrictions]
        return predicate.model_copy(update={"restrictions": restrictions})
    foreign = [r.cred_def_id for r in predicate.restrictions if to_unqualified(r.cred_def_id) != cred_def_id]
    if foreign:
        raise ValidationError(
            f"predicate {predicate.referent!r} is restricted to another credential definition",
            {"expected": cred_def_id, "restrictions": foreign},
        )
    return predicate.bound_to(cred_def_id)
