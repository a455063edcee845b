"""Credential definition lookup and AnonCreds identifier handling."""
import logging
import re
from typing import List, NamedTuple

from app.errors import NotFound, ValidationError
from app.models import CredentialDefinition

logger = logging.getLogger(__name__)

B58 = "1-9A-HJ-NP-Za-km-z"
LEGACY_CRED_DEF_ID = re.compile(rf"^([{B58}]{{21,22}}):3:CL:([1-9][0-9]*):(.+)$")
QUALIFIED_CRED_DEF_ID = re.compile(
    rf"^did:indy:([a-z0-9:]+):([{B58}]{{21,22}})/anoncreds/v0/CLAIM_DEF/([1-9][0-9]*)/(.+)$"
)


class CredDefIdParts(NamedTuple):
    namespace_identifier: str
    schema_seq_no: str
    tag: str
    namespace: str = ""


def parse_cred_def_id(cred_def_id: str) -> CredDefIdParts:
    """Split a legacy or did:indy credential definition id into its parts."""
    match = QUALIFIED_CRED_DEF_ID.match(cred_def_id or "")
    if match:
        namespace, nym, seq_no, tag = match.groups()
        return CredDefIdParts(nym, seq_no, tag, namespace)
    match = LEGACY_CRED_DEF_ID.match(cred_def_id or "")
    if match:
        nym, seq_no, tag = match.groups()
        return CredDefIdParts(nym, seq_no, tag)
    raise ValidationError(f"Bad credential definition identifier {cred_def_id!r}")


def unqualified_cred_def_id(namespace_identifier: str, schema_seq_no: str, tag: str) -> str:
    return f"{namespace_identifier}:3:CL:{schema_seq_no}:{tag}"


def to_unqualified(cred_def_id: str) -> str:
    parts = parse_cred_def_id(cred_def_id)
    return unqualified_cred_def_id(parts.namespace_identifier, parts.schema_seq_no, parts.tag)


class CredentialDefinitionRegistry:
    """Read-only view over the definitions the agent has published.

    Tags are not unique on the ledger; lookups pick the first match in the
    order the runtime enumerates them.
    """

    def __init__(self, runtime):
        self.runtime = runtime

    def get_all(self) -> List[CredentialDefinition]:
        ids = self.runtime.created_credential_definition_ids()
        if not ids:
            raise NotFound("Credential definitions not found.")
        return [
            CredentialDefinition.from_runtime(self.runtime.get_credential_definition(cred_def_id))
            for cred_def_id in ids
        ]

    def get_by_tag(self, tag: str) -> CredentialDefinition:
        for definition in self.get_all():
            if definition.tag == tag:
                return definition
        logger.info("no credential definition tagged %r", tag)
        raise NotFound(f"Credential definition not found: {tag}", {"tag": tag})

    def schema_attributes(self, schema_id: str) -> List[str]:
        schema = self.runtime.get_schema(schema_id).get("schema") or {}
        return list(schema.get("attrNames") or schema.get("attr_names") or [])
