import operator
from enum import Enum
from typing import Any, Dict, List, Literal, NamedTuple, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from app.errors import ValidationError

TERMINAL_STATES = frozenset({"done", "abandoned"})

_COMPARATORS = {
    "<=": operator.le,
    "<": operator.lt,
    ">=": operator.ge,
    ">": operator.gt,
}


def is_terminal(state: Optional[str]) -> bool:
    return state in TERMINAL_STATES


class NetworkOption(str, Enum):
    BCOVRIN_TESTNET = "bcovrin:testnet"
    INDICIO_TESTNET = "indicio:testnet"


class AutoAccept(str, Enum):
    ALWAYS = "always"
    CONTENT_APPROVED = "contentApproved"
    NEVER = "never"

    @property
    def automatic(self) -> bool:
        return self is AutoAccept.ALWAYS


class RecordKind(str, Enum):
    CONNECTION = "connection"
    CREDENTIAL = "credential"
    PROOF = "proof"


class CredentialDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str = Field(
        validation_alias=AliasChoices("id", "credential_definition_id", "credentialDefinitionId"),
        serialization_alias="credentialDefinitionId",
    )
    tag: str
    schema_id: str = Field(validation_alias=AliasChoices("schemaId", "schema_id"), serialization_alias="schemaId")
    issuer_id: str = Field(validation_alias=AliasChoices("issuerId", "issuer_id"), serialization_alias="issuerId")

    @classmethod
    def from_runtime(cls, doc: Dict[str, Any]) -> "CredentialDefinition":
        body = doc.get("credential_definition") or {}
        return cls(id=doc["credential_definition_id"], **body)


class Attribute(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    name: str = Field(min_length=1)
    mime_type: str = Field("text/plain", alias="mime-type")
    value: str


class AttributeSet(BaseModel):
    """Ordered claim payload of an offer; names are unique and case-sensitive."""

    attributes: List[Attribute]

    @model_validator(mode="after")
    def _unique_names(self):
        seen = set()
        for attr in self.attributes:
            if attr.name in seen:
                raise ValueError(f"duplicate attribute name: {attr.name}")
            seen.add(attr.name)
        return self

    @classmethod
    def from_values(cls, values: Dict[str, object]) -> "AttributeSet":
        return cls(attributes=[Attribute(name=name, value=str(value)) for name, value in values.items()])

    def names(self) -> List[str]:
        return [attr.name for attr in self.attributes]

    def check_schema(self, schema_names: List[str]):
        unknown = [name for name in self.names() if name not in schema_names]
        missing = [name for name in schema_names if name not in self.names()]
        if unknown or missing:
            raise ValidationError(
                "attributes do not match the schema",
                {"unknown": unknown, "missing": missing},
            )

    def to_preview(self) -> List[Dict[str, str]]:
        return [attr.model_dump(by_alias=True) for attr in self.attributes]


class Restriction(BaseModel):
    cred_def_id: str = Field(min_length=1)


class PredicateSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    referent: str = Field(validation_alias=AliasChoices("referent", "referentName"))
    name: str = Field(validation_alias=AliasChoices("name", "attributeName"))
    p_type: Literal["<=", "<", ">=", ">"]
    p_value: int
    restrictions: List[Restriction] = Field(default_factory=list)

    def satisfied_by(self, value: int) -> bool:
        return _COMPARATORS[self.p_type](int(value), self.p_value)

    def bound_to(self, cred_def_id: str) -> "PredicateSpec":
        return self.model_copy(update={"restrictions": [Restriction(cred_def_id=cred_def_id)]})

    def to_request(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "p_type": self.p_type,
            "p_value": self.p_value,
            "restrictions": [r.model_dump() for r in self.restrictions],
        }


class AttributeRequest(BaseModel):
    referent: str
    name: str
    restrictions: List[Restriction] = Field(default_factory=list)

    def to_request(self) -> Dict[str, Any]:
        return {"name": self.name, "restrictions": [r.model_dump() for r in self.restrictions]}


class ProtocolMessage(BaseModel):
    record_id: str
    kind: Literal["credential-offer", "present-proof"]
    message: Dict[str, Any] = Field(default_factory=dict)

    def attachment(self) -> Dict[str, str]:
        return {"id": self.record_id, "type": self.kind}


class StartedExchange(NamedTuple):
    record_id: str
    state: Optional[str]
    message: Dict[str, Any]

    def record(self) -> Dict[str, Optional[str]]:
        return {"id": self.record_id, "state": self.state}


class OutOfBandInvitation(BaseModel):
    id: str
    invitation_url: str
    messages: List[ProtocolMessage] = Field(default_factory=list)
    multi_use: bool = False


class CredentialState(BaseModel):
    state: Optional[str] = None
    error_message: Optional[str] = Field(None, serialization_alias="errorMessage")


class ProofState(BaseModel):
    state: Optional[str] = None
    verified: Optional[bool] = None
    error_message: Optional[str] = Field(None, serialization_alias="errorMessage")


class ConnectionState(BaseModel):
    state: Optional[str] = None
    connection_id: Optional[str] = Field(None, serialization_alias="connectionId")


class ServiceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    status_code: int = Field(alias="statusCode")
    message: str
    data: Any = None


class AgentInitRequest(BaseModel):
    seed: str
    network: str


class AgentDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    agent_id: str = Field(alias="agentId")
    admin_port: int = Field(alias="adminPort")
    inbound_port: int = Field(alias="inboundPort")
    did: str
    endpoint: str


class IssueCourseCredentialRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    name: str
    marks: str
    connection_id: str = Field(alias="connectionId")


class VerifyCourseCredentialRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    connection_id: str = Field(alias="connectionId")


class IssueCredentialRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    tag: str
    attributes: Dict[str, str]
    connection_id: Optional[str] = Field(None, alias="connectionId")
    comment: Optional[str] = None


class ProofRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    tag: str
    predicates: List[PredicateSpec]
    connection_id: Optional[str] = Field(None, alias="connectionId")
    name: Optional[str] = None
