import itertools
import json
import os
import sys
from pathlib import Path

import httpx
import pytest
import redis as _redis

os.environ.setdefault("DB_DSN", "sqlite://")
os.environ.setdefault("SHORTENER_ENABLED", "false")

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from app import storage  # noqa: E402
from app.did import indy_key_from_seed  # noqa: E402
from app.invitations import ShortLinkStore  # noqa: E402
from app.ledger import LedgerRegistrar  # noqa: E402
from app.models import PredicateSpec  # noqa: E402
from app.orchestrator import ExchangeOrchestrator  # noqa: E402
from app.runtime import AgentRuntime  # noqa: E402
from app.session import AgentSession  # noqa: E402
from app.settings import DEFAULT_COURSE_TAGS, Settings  # noqa: E402

SEED = "000000000000000000000000Steward1"
NOW = 1_700_000_000
NYM = "WgWxqztrNooG92RXvxSTWv"
COURSE_TAGS = [tag.strip() for tag in DEFAULT_COURSE_TAGS.split(",")]


def legacy_cred_def_id(seq_no, tag, nym=NYM):
    return f"{nym}:3:CL:{seq_no}:{tag}"


class FakeAcaPy:
    """In-memory stand-in for the ACA-Py admin API."""

    def __init__(self):
        self.ready = True
        self.default_endpoint = "http://agent.test:8030"
        self.cred_defs = []
        self.schemas = {}
        self.credentials = {}
        self.proofs = {}
        self.invitations = {}
        self.connections = {}
        self.failures = {}
        self.calls = []
        self.wallet_did = None
        self._ids = itertools.count(1)

    # seeding and holder-side simulation

    def publish(self, tag, attr_names, seq_no=None, cred_def_id=None):
        seq_no = seq_no or 10 + len(self.cred_defs)
        schema_id = f"{NYM}:2:{tag.replace(' ', '_').lower()}:1.0"
        cred_def_id = cred_def_id or legacy_cred_def_id(seq_no, tag)
        self.schemas[schema_id] = list(attr_names)
        self.cred_defs.append(
            {
                "credential_definition_id": cred_def_id,
                "credential_definition": {
                    "issuerId": NYM,
                    "schemaId": schema_id,
                    "tag": tag,
                    "type": "CL",
                    "value": {},
                },
            }
        )
        return cred_def_id

    def complete_credential(self, cred_ex_id, state="done"):
        self.credentials[cred_ex_id]["state"] = state

    def offered_values(self, cred_ex_id):
        preview = self.credentials[cred_ex_id]["cred_preview"]
        return {attr["name"]: attr["value"] for attr in preview["attributes"]}

    def present(self, pres_ex_id, values):
        record = self.proofs[pres_ex_id]
        request = record["pres_request"]["anoncreds"]
        verified = all(
            PredicateSpec(
                referent=referent,
                name=pred["name"],
                p_type=pred["p_type"],
                p_value=pred["p_value"],
            ).satisfied_by(values[pred["name"]])
            for referent, pred in request["requested_predicates"].items()
        )
        revealed = {
            referent: {"raw": str(values[attr["name"]]), "encoded": "0"}
            for referent, attr in request["requested_attributes"].items()
        }
        record["by_format"] = {
            "pres": {
                "anoncreds": {
                    "requested_proof": {
                        "revealed_attrs": revealed,
                        "predicates": {ref: {"sub_proof_index": 0} for ref in request["requested_predicates"]},
                    }
                }
            }
        }
        record["state"] = "done"
        record["verified"] = "true" if verified else "false"

    def accept_invitation(self, invi_msg_id, connection_id, state="active"):
        self.connections.setdefault(invi_msg_id, []).append(
            {"connection_id": connection_id, "state": state, "invitation_msg_id": invi_msg_id}
        )

    def paths(self, method=None):
        return [path for m, path, _ in self.calls if method is None or m == method]

    # transport

    def _next(self, prefix):
        return f"{prefix}-{next(self._ids)}"

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else {}
        self.calls.append((request.method, path, body))
        if path in self.failures:
            return httpx.Response(self.failures[path], json={"error": "injected failure"})
        method = request.method

        if method == "GET" and path == "/status/ready":
            return httpx.Response(200, json={"ready": self.ready})
        if method == "GET" and path == "/status/config":
            return httpx.Response(
                200,
                json={"config": {"default_endpoint": self.default_endpoint, "additional_endpoints": []}},
            )
        if method == "POST" and path == "/wallet/did/create":
            did = self.wallet_did or indy_key_from_seed(body["seed"]).did
            return httpx.Response(200, json={"result": {"did": did, "method": "sov", "key_type": "ed25519"}})

        if method == "GET" and path == "/anoncreds/credential-definitions":
            ids = [doc["credential_definition_id"] for doc in self.cred_defs]
            return httpx.Response(200, json={"credential_definition_ids": ids})
        if method == "GET" and path.startswith("/anoncreds/credential-definition/"):
            cred_def_id = path[len("/anoncreds/credential-definition/"):]
            for doc in self.cred_defs:
                if doc["credential_definition_id"] == cred_def_id:
                    return httpx.Response(200, json=doc)
            return httpx.Response(404, json={"error": "not found"})
        if method == "GET" and path.startswith("/anoncreds/schema/"):
            schema_id = path[len("/anoncreds/schema/"):]
            if schema_id not in self.schemas:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(
                200,
                json={"schema_id": schema_id, "schema": {"attrNames": self.schemas[schema_id]}},
            )

        if method == "POST" and path in ("/issue-credential-2.0/create-offer", "/issue-credential-2.0/send-offer"):
            cred_ex_id = self._next("cred-ex")
            self.credentials[cred_ex_id] = {
                "cred_ex_id": cred_ex_id,
                "state": "offer-sent",
                "connection_id": body.get("connection_id"),
                "cred_preview": body["credential_preview"],
                "filter": body["filter"],
                "auto_remove": body.get("auto_remove"),
            }
            offer = {"@id": f"msg-{cred_ex_id}", "@type": "https://didcomm.org/issue-credential/2.0/offer-credential"}
            return httpx.Response(200, json={"cred_ex_id": cred_ex_id, "state": "offer-sent", "cred_offer": offer})
        if method == "GET" and path.startswith("/issue-credential-2.0/records/"):
            cred_ex_id = path.rsplit("/", 1)[-1]
            if cred_ex_id not in self.credentials:
                return httpx.Response(404, json={"error": "not found"})
            record = self.credentials[cred_ex_id]
            return httpx.Response(200, json={"cred_ex_record": {k: record[k] for k in ("cred_ex_id", "state")}})

        if method == "POST" and path in ("/present-proof-2.0/create-request", "/present-proof-2.0/send-request"):
            pres_ex_id = self._next("pres-ex")
            self.proofs[pres_ex_id] = {
                "pres_ex_id": pres_ex_id,
                "state": "request-sent",
                "connection_id": body.get("connection_id"),
                "pres_request": body["presentation_request"],
            }
            message = {"@id": f"msg-{pres_ex_id}", "@type": "https://didcomm.org/present-proof/2.0/request-presentation"}
            return httpx.Response(200, json={"pres_ex_id": pres_ex_id, "state": "request-sent", "pres_request": message})
        if method == "GET" and path.startswith("/present-proof-2.0/records/"):
            pres_ex_id = path.rsplit("/", 1)[-1]
            if pres_ex_id not in self.proofs:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json=self.proofs[pres_ex_id])

        if method == "POST" and path == "/out-of-band/create-invitation":
            invi_msg_id = self._next("invi")
            invitation = {
                "@id": invi_msg_id,
                "@type": "https://didcomm.org/out-of-band/1.1/invitation",
                "label": "SSI Portal",
                "requests~attach": [{"@id": a["id"], "mime-type": "application/json"} for a in body["attachments"]],
            }
            if body.get("handshake_protocols"):
                invitation["handshake_protocols"] = body["handshake_protocols"]
            self.invitations[invi_msg_id] = {
                "body": body,
                "multi_use": request.url.params.get("multi_use") == "true",
            }
            return httpx.Response(
                200,
                json={
                    "oob_id": self._next("oob"),
                    "invi_msg_id": invi_msg_id,
                    "invitation": invitation,
                    "invitation_url": f"{self.default_endpoint}?oob=ignored",
                    "state": "initial",
                },
            )
        if method == "GET" and path == "/connections":
            invi_msg_id = request.url.params.get("invitation_msg_id")
            return httpx.Response(200, json={"results": list(self.connections.get(invi_msg_id, []))})

        return httpx.Response(404, json={"error": f"no route {method} {path}"})


class FakeLedger:
    def __init__(self):
        self.requests = []
        self.indicio_status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.url.host, body))
        if "bcovrin" in request.url.host:
            key = indy_key_from_seed(body["seed"])
            return httpx.Response(200, json={"did": key.did, "seed": body["seed"], "verkey": key.verkey})
        return httpx.Response(200, json={"statusCode": self.indicio_status})


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def get(self, key):
        return self.store.get(key)


class FailingRedis:
    def setex(self, key, ttl, value):
        raise _redis.ConnectionError("redis unavailable")

    def get(self, key):
        raise _redis.ConnectionError("redis unavailable")


@pytest.fixture
def settings():
    return Settings(
        acapy_admin_url="http://acapy.test",
        agent_endpoints=["http://agent.test:8030"],
        db_dsn="sqlite://",
        public_base_url="http://short.test",
        short_link_ttl_seconds=60,
        nym_bcovrin_url="http://test.bcovrin.vonx.io/register",
        nym_indicio_url="https://selfserve.indiciotech.io/nym",
    )


@pytest.fixture
def acapy():
    fake = FakeAcaPy()
    fake.publish("PHC Credential", ["Name", "Issued By", "Expiry"])
    fake.publish("Student Access Card", ["Name", "ID", "Expiry"])
    for tag in COURSE_TAGS:
        fake.publish(tag, ["Name", "Marks Scored", "Timestamp"])
    return fake


@pytest.fixture
def runtime(acapy):
    client = AgentRuntime("http://acapy.test", transport=httpx.MockTransport(acapy.handler))
    yield client
    client.close()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def registrar(settings, ledger):
    return LedgerRegistrar(settings, transport=httpx.MockTransport(ledger.handler))


@pytest.fixture
def session(settings, acapy, registrar):
    def factory():
        return AgentRuntime(settings.acapy_admin_url, transport=httpx.MockTransport(acapy.handler))

    agent = AgentSession(settings, runtime_factory=factory, registrar=registrar)
    yield agent
    agent.close()


@pytest.fixture
def ready_session(session):
    session.initialize(SEED, "bcovrin:testnet")
    return session


@pytest.fixture
def db(settings):
    engine, Session = storage.init_db(settings)
    yield Session
    engine.dispose()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def links(fake_redis):
    return ShortLinkStore(fake_redis, "http://short.test", 60)


@pytest.fixture
def orchestrator(ready_session, settings, db, links):
    return ExchangeOrchestrator(ready_session, settings, db=db, shortener=links, clock=lambda: NOW)


@pytest.fixture
def client(orchestrator, links):
    from fastapi.testclient import TestClient

    from app.main import app, get_orchestrator, get_shortener

    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_shortener] = lambda: links
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
