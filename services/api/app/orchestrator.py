"""Public credential and proof exchange operations.

Every operation resolves its collaborators from the live agent session,
runs inside a tracing span, and lets only taxonomy errors escape: any
other exception is re-raised as UpstreamFailure naming the operation.
"""
import logging
from contextlib import contextmanager
from typing import Dict, Optional, Sequence, Union

from app import storage, telemetry
from app.anoncreds import CredentialDefinitionRegistry, to_unqualified
from app.errors import NotFound, ServiceError, UpstreamFailure, ValidationError
from app.invitations import InvitationPackager
from app.models import (
    AttributeRequest,
    AttributeSet,
    AutoAccept,
    PredicateSpec,
    ProtocolMessage,
    RecordKind,
    Restriction,
    ServiceResponse,
)
from app.offers import ExpiryPolicy, OfferBuilder
from app.proofs import PredicateRequestBuilder
from app.tracker import ExchangeStateTracker
from app.utils import four_digit_id, now_ts

logger = logging.getLogger(__name__)

PHC_TAG = "PHC Credential"
STUDENT_CARD_TAG = "Student Access Card"


def respond(status_code: int, message: str, data=None) -> dict:
    return ServiceResponse(status_code=status_code, message=message, data=data).model_dump(by_alias=True)


class ExchangeOrchestrator:
    def __init__(self, session, settings, db=None, shortener=None, clock=now_ts):
        self.session = session
        self.settings = settings
        self.db = db
        self.shortener = shortener
        self.clock = clock
        self.expiry = ExpiryPolicy(settings.offer_expiry_seconds, clock)

    @contextmanager
    def _operation(self, name: str, **attributes):
        with telemetry.span(name, **attributes):
            try:
                yield
            except ServiceError as exc:
                logger.warning("%s failed: %s", name, exc.message, extra={"operation": name})
                raise
            except ValueError as exc:
                logger.warning("%s rejected input: %s", name, exc, extra={"operation": name})
                raise ValidationError(f"{name}: {exc}") from exc
            except Exception as exc:
                logger.exception("%s failed", name, extra={"operation": name})
                raise UpstreamFailure.wrap(name, exc) from exc

    def _follow_up(self, record_id: str, step: str, fn, *args, **kwargs):
        # the exchange record already exists; failures must still point at it
        try:
            return fn(*args, **kwargs)
        except ServiceError as exc:
            exc.details.setdefault("exchangeId", record_id)
            logger.error("%s failed after exchange creation", step, extra={"exchange_id": record_id})
            raise
        except Exception as exc:
            logger.error("%s failed after exchange creation", step, extra={"exchange_id": record_id})
            raise UpstreamFailure.wrap(step, exc, {"exchangeId": record_id}) from exc

    def _record(self, record_id, kind, tag=None, connection_id=None, invitation=None, url=None):
        if self.db is None:
            return
        storage.record_exchange(
            self.db,
            record_id,
            kind,
            tag=tag,
            connection_id=connection_id,
            invitation_id=invitation.id if invitation else None,
            invitation_url=url,
        )

    def _packager(self, runtime) -> InvitationPackager:
        return InvitationPackager(runtime, self.session.endpoints, self.shortener)

    # agent lifecycle

    def initialize_agent(self, seed: str, network: str) -> dict:
        with self._operation("initialize_agent", network=network):
            details = self.session.initialize(seed, network)
            return respond(201, "Agent initialized successfully", details.model_dump(by_alias=True))

    # credential definitions

    def get_all_credential_definitions(self) -> dict:
        with self._operation("get_all_credential_definitions"):
            definitions = CredentialDefinitionRegistry(self.session.runtime).get_all()
            return respond(
                200,
                "Credential definitions fetched successfully",
                [d.model_dump(by_alias=True) for d in definitions],
            )

    def get_credential_definition_by_tag(self, tag: str) -> dict:
        with self._operation("get_credential_definition_by_tag", tag=tag):
            definition = CredentialDefinitionRegistry(self.session.runtime).get_by_tag(tag)
            return respond(200, "Credential definition fetched successfully", definition.model_dump(by_alias=True))

    # issuance

    def issue_credential(
        self,
        tag: str,
        attributes: Union[AttributeSet, Dict[str, object]],
        connection_id: Optional[str] = None,
        comment: Optional[str] = None,
        message: Optional[str] = None,
    ) -> dict:
        with self._operation("issue_credential", tag=tag, connection_id=connection_id):
            if not isinstance(attributes, AttributeSet):
                attributes = AttributeSet.from_values(attributes)
            runtime = self.session.runtime
            registry = CredentialDefinitionRegistry(runtime)
            definition = registry.get_by_tag(tag)
            offers = OfferBuilder(runtime, registry)
            payload = offers.build_offer(definition, attributes, AutoAccept.ALWAYS, connection_id, comment)
            if payload.connectionless:
                # packager needs an endpoint; check it before the runtime creates a record
                packager = self._packager(runtime)
                packager.domain()
            started = offers.issue(payload)
            record_id, record = started.record_id, started.record()

            if not payload.connectionless:
                self._follow_up(record_id, "record_exchange", self._record, record_id, "credential", tag, connection_id)
                return respond(201, message or "Credential offer sent successfully", {"credentialRecord": record})

            invitation = self._follow_up(
                record_id,
                "package_invitation",
                packager.package_invitation,
                [ProtocolMessage(record_id=record_id, kind="credential-offer", message=started.message)],
                False,
            )
            url = packager.shorten_url(invitation.invitation_url)
            self._follow_up(record_id, "record_exchange", self._record, record_id, "credential", tag, None, invitation, url)
            return respond(
                201,
                message or "Credential offer created successfully (OOB)",
                {"credentialUrl": url, "credentialRecord": record},
            )

    def issue_phc(self, name: str) -> dict:
        attributes = {"Name": name, "Issued By": self.settings.issuer_label, "Expiry": self.expiry.expiry()}
        return self.issue_credential(PHC_TAG, attributes)

    def issue_student_access_card(self, name: str) -> dict:
        attributes = {"Name": name, "ID": four_digit_id(), "Expiry": self.expiry.expiry()}
        return self.issue_credential(STUDENT_CARD_TAG, attributes)

    def issue_course_credential(self, name: str, marks: str, course_tag: str, connection_id: str) -> dict:
        attributes = {"Name": name, "Marks Scored": marks, "Timestamp": self.clock()}
        return self.issue_credential(
            course_tag,
            attributes,
            connection_id=connection_id,
            comment="Issuing Course Credential",
            message=f"Credential for {course_tag} issued successfully",
        )

    # verification

    def request_proof(
        self,
        tag: str,
        predicates: Sequence[PredicateSpec],
        connection_id: Optional[str] = None,
        name: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> dict:
        with self._operation("request_proof", tag=tag, connection_id=connection_id):
            definition = CredentialDefinitionRegistry(self.session.runtime).get_by_tag(tag)
            return self._request_proof(
                definition.id,
                predicates,
                (),
                connection_id,
                name or f"Validating {tag}",
                comment,
                tag,
            )

    def _request_proof(
        self, cred_def_id, predicates, attributes, connection_id, name, comment, tag, status_code=201, message=None
    ):
        runtime = self.session.runtime
        builder = PredicateRequestBuilder(runtime)
        payload = builder.build_predicate_request(
            cred_def_id,
            predicates,
            connection_id=connection_id,
            name=name,
            comment=comment,
            attributes=attributes,
        )
        if payload.connectionless:
            packager = self._packager(runtime)
            packager.domain()
        started = builder.request(payload)
        record_id, record = started.record_id, started.record()

        if not payload.connectionless:
            self._follow_up(record_id, "record_exchange", self._record, record_id, "proof", tag, connection_id)
            return respond(status_code, message or "Proof request initiated successfully", {"proofRecord": record})

        invitation = self._follow_up(
            record_id,
            "package_invitation",
            packager.package_invitation,
            [ProtocolMessage(record_id=record_id, kind="present-proof", message=started.message)],
            False,
        )
        url = packager.shorten_url(invitation.invitation_url)
        self._follow_up(record_id, "record_exchange", self._record, record_id, "proof", tag, None, invitation, url)
        return respond(
            status_code,
            message or "Proof request initiated successfully (OOB)",
            {"proofUrl": url, "proofRecord": record},
        )

    def _expiry_predicate(self) -> PredicateSpec:
        return PredicateSpec(referent="Validating expiration", name="Expiry", p_type=">", p_value=self.clock())

    def verify_phc(self) -> dict:
        return self.request_proof(PHC_TAG, [self._expiry_predicate()], name="Validating PHC")

    def verify_student_access_card(self, connection_id: str) -> dict:
        return self.request_proof(
            STUDENT_CARD_TAG,
            [self._expiry_predicate()],
            connection_id=connection_id,
            name="Validating Student Access Card",
        )

    def verify_course_credential(self, connection_id: str, course_tag: str) -> dict:
        predicate = PredicateSpec(referent="Validating timestamp", name="Timestamp", p_type="<=", p_value=self.clock())
        return self.request_proof(
            course_tag,
            [predicate],
            connection_id=connection_id,
            name=f"Validating {course_tag} Credential",
            comment=f"Verifying {course_tag} Credential",
        )

    def check_performance(self, connection_id: str) -> dict:
        with self._operation("check_performance", connection_id=connection_id):
            tags = self.settings.performance_course_tags
            if not tags:
                raise NotFound("No course credentials configured for the performance check")
            registry = CredentialDefinitionRegistry(self.session.runtime)
            attributes = [
                AttributeRequest(
                    referent=f"Requesting Marks of Module {index}",
                    name="Marks Scored",
                    restrictions=[Restriction(cred_def_id=to_unqualified(registry.get_by_tag(tag).id))],
                )
                for index, tag in enumerate(tags, start=1)
            ]
            return self._request_proof(
                None,
                [],
                attributes,
                connection_id,
                "Requesting Marks",
                None,
                None,
                status_code=200,
                message="Proof requested successfully!",
            )

    # connections

    def create_invitation(self) -> dict:
        with self._operation("create_invitation"):
            invitation = self._packager(self.session.runtime).package_invitation([], multi_use=True)
            self._record(invitation.id, RecordKind.CONNECTION.value, invitation=invitation, url=invitation.invitation_url)
            return respond(
                201,
                "Connection invitation created successfully!",
                {"invitationUrl": invitation.invitation_url, "outOfBandId": invitation.id},
            )

    # polling

    def poll_state(self, kind, record_id: str) -> dict:
        with self._operation("poll_state", kind=kind, record_id=record_id):
            try:
                kind = RecordKind(kind)
            except ValueError as exc:
                raise ValidationError(f"Unknown record kind: {kind}") from exc
            tracker = ExchangeStateTracker(self.session.runtime)
            if kind is RecordKind.CONNECTION:
                snapshot, message = tracker.get_connection_state(record_id), "Connection state fetched successfully!"
            elif kind is RecordKind.CREDENTIAL:
                snapshot, message = tracker.get_credential_state(record_id), "Credential state fetched successfully"
            else:
                snapshot, message = tracker.get_proof_state(record_id), "Verification state fetched successfully"
            return respond(200, message, snapshot.model_dump(by_alias=True))

    def get_credential_state(self, record_id: str) -> dict:
        return self.poll_state(RecordKind.CREDENTIAL, record_id)

    def get_verification_state(self, record_id: str) -> dict:
        return self.poll_state(RecordKind.PROOF, record_id)

    def get_connection_state(self, out_of_band_id: str) -> dict:
        return self.poll_state(RecordKind.CONNECTION, out_of_band_id)

    def get_requested_data(self, record_id: str) -> dict:
        with self._operation("get_requested_data", record_id=record_id):
            revealed = ExchangeStateTracker(self.session.runtime).get_revealed_attributes(record_id)
            return respond(200, "Requested data fetched successfully!", {"requestedProof": revealed})

    # audit log

    def list_exchanges(self, kind: Optional[str] = None, limit: int = 100) -> dict:
        with self._operation("list_exchanges", kind=kind):
            if self.db is None:
                return respond(200, "Exchanges fetched successfully", [])
            return respond(200, "Exchanges fetched successfully", storage.list_exchanges(self.db, kind, limit))
