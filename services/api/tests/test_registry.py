import httpx
import pytest

from app.anoncreds import (
    CredentialDefinitionRegistry,
    parse_cred_def_id,
    to_unqualified,
    unqualified_cred_def_id,
)
from app.errors import NotFound, ValidationError
from app.runtime import AgentRuntime
from conftest import NYM, FakeAcaPy, legacy_cred_def_id


def test_get_by_tag_unknown_tag_is_not_found(runtime):
    registry = CredentialDefinitionRegistry(runtime)
    with pytest.raises(NotFound) as err:
        registry.get_by_tag("Library Card")
    assert err.value.details == {"tag": "Library Card"}


def test_get_by_tag_returns_matching_definition(runtime, acapy):
    registry = CredentialDefinitionRegistry(runtime)
    definition = registry.get_by_tag("Student Access Card")
    assert definition.tag == "Student Access Card"
    assert definition.id == acapy.cred_defs[1]["credential_definition_id"]
    assert definition.issuer_id == NYM


def test_get_by_tag_duplicate_tags_pick_first_deterministically(runtime, acapy):
    second = acapy.publish("PHC Credential", ["Name", "Issued By", "Expiry"], seq_no=99)
    registry = CredentialDefinitionRegistry(runtime)
    first = registry.get_by_tag("PHC Credential")
    assert first.id != second
    assert first.id == acapy.cred_defs[0]["credential_definition_id"]
    assert registry.get_by_tag("PHC Credential") == first


def test_tag_match_is_exact(runtime):
    registry = CredentialDefinitionRegistry(runtime)
    with pytest.raises(NotFound):
        registry.get_by_tag("phc credential")


def test_get_all_empty_is_not_found():
    empty = AgentRuntime("http://acapy.test", transport=httpx.MockTransport(FakeAcaPy().handler))
    with pytest.raises(NotFound) as err:
        CredentialDefinitionRegistry(empty).get_all()
    assert err.value.message == "Credential definitions not found."


def test_get_all_keeps_enumeration_order(runtime, acapy):
    tags = [d.tag for d in CredentialDefinitionRegistry(runtime).get_all()]
    assert tags == [doc["credential_definition"]["tag"] for doc in acapy.cred_defs]


def test_schema_attributes(runtime):
    registry = CredentialDefinitionRegistry(runtime)
    definition = registry.get_by_tag("Student Access Card")
    assert registry.schema_attributes(definition.schema_id) == ["Name", "ID", "Expiry"]


def test_parse_legacy_and_qualified_ids():
    legacy = parse_cred_def_id(legacy_cred_def_id(12, "PHC Credential"))
    assert legacy == (NYM, "12", "PHC Credential", "")

    qualified_id = f"did:indy:bcovrin:testnet:{NYM}/anoncreds/v0/CLAIM_DEF/12/PHC Credential"
    qualified = parse_cred_def_id(qualified_id)
    assert qualified.namespace == "bcovrin:testnet"
    assert to_unqualified(qualified_id) == legacy_cred_def_id(12, "PHC Credential")


def test_unqualified_id_round_trips_legacy_form():
    cred_def_id = unqualified_cred_def_id(NYM, "7", "default")
    assert to_unqualified(cred_def_id) == cred_def_id


@pytest.mark.parametrize("bad", ["", "not-an-id", f"{NYM}:2:schema:1.0", f"{NYM}:3:CL:0:tag"])
def test_parse_rejects_bad_ids(bad):
    with pytest.raises(ValidationError):
        parse_cred_def_id(bad)
