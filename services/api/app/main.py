import logging
from contextlib import asynccontextmanager

import redis as _redis
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from app import storage, telemetry
from app.errors import ServiceError
from app.invitations import ShortLinkStore
from app.logging_config import configure_logging
from app.models import (
    AgentInitRequest,
    IssueCourseCredentialRequest,
    IssueCredentialRequest,
    ProofRequestBody,
    VerifyCourseCredentialRequest,
)
from app.orchestrator import ExchangeOrchestrator
from app.session import AgentSession
from app.settings import Settings
from app.utils import now_ts

settings = Settings()
configure_logging(settings)
telemetry.setup_otel(settings)

logger = logging.getLogger(__name__)

engine, Session = storage.init_db(settings)
redis = storage.init_redis(settings)
shortener = ShortLinkStore(redis, settings.public_base_url, settings.short_link_ttl_seconds)
agent_session = AgentSession(settings)
orchestrator = ExchangeOrchestrator(
    agent_session,
    settings,
    db=Session,
    shortener=shortener if settings.shortener_enabled else None,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    agent_session.close()


app = FastAPI(title="SSI Agent Controller", version="1.0.0", lifespan=lifespan)
origins = [origin.strip() for origin in settings.ui_cors_origins.split(",") if origin.strip()]
if not origins:
    origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_orchestrator() -> ExchangeOrchestrator:
    return orchestrator


def get_shortener() -> ShortLinkStore:
    return shortener


@app.exception_handler(ServiceError)
def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "statusCode": exc.status_code,
            "message": exc.message,
            "error": exc.kind,
            "details": exc.details,
        },
    )


@app.post("/agent/spinup", status_code=201)
def agent_initialize(req: AgentInitRequest, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.initialize_agent(req.seed, req.network)


@app.post("/agent/create-invitation", status_code=201)
def create_invitation(orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.create_invitation()


@app.get("/agent/connection-state/id/{oob_id}")
def connection_state(oob_id: str, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.get_connection_state(oob_id)


@app.post("/agent/issue-phc/name/{name}", status_code=201)
def issue_phc(name: str, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.issue_phc(name)


@app.post("/agent/issue-student-access-card/name/{name}", status_code=201)
def issue_student_access_card(name: str, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.issue_student_access_card(name)


@app.post("/agent/verify-student-access-card/connectionId/{connection_id}", status_code=201)
def verify_student_access_card(connection_id: str, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.verify_student_access_card(connection_id)


@app.post("/agent/verify-phc", status_code=201)
def verify_phc(orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.verify_phc()


@app.post("/agent/issue/{course_tag}", status_code=201)
def issue_course_credential(
    course_tag: str,
    req: IssueCourseCredentialRequest,
    orch: ExchangeOrchestrator = Depends(get_orchestrator),
):
    return orch.issue_course_credential(req.name, req.marks, course_tag, req.connection_id)


@app.post("/agent/verify/{course_tag}", status_code=201)
def verify_course_credential(
    course_tag: str,
    req: VerifyCourseCredentialRequest,
    orch: ExchangeOrchestrator = Depends(get_orchestrator),
):
    return orch.verify_course_credential(req.connection_id, course_tag)


@app.post("/agent/check-performance/connectionId/{connection_id}", status_code=200)
def check_performance(connection_id: str, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.check_performance(connection_id)


@app.get("/agent/requested-data/id/{record_id}")
def requested_data(record_id: str, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.get_requested_data(record_id)


@app.get("/agent/verification-state/id/{record_id}")
def verification_state(record_id: str, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.get_verification_state(record_id)


@app.get("/agent/credential-state/id/{record_id}")
def credential_state(record_id: str, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.get_credential_state(record_id)


@app.get("/agent/credential-definitions")
def credential_definitions(orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.get_all_credential_definitions()


@app.get("/agent/credential-definitions/tag/{tag}")
def credential_definition_by_tag(tag: str, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.get_credential_definition_by_tag(tag)


@app.post("/agent/credentials", status_code=201)
def issue_credential(req: IssueCredentialRequest, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.issue_credential(req.tag, req.attributes, connection_id=req.connection_id, comment=req.comment)


@app.post("/agent/proofs", status_code=201)
def request_proof(req: ProofRequestBody, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.request_proof(req.tag, req.predicates, connection_id=req.connection_id, name=req.name)


@app.get("/agent/state/{kind}/{record_id}")
def record_state(kind: str, record_id: str, orch: ExchangeOrchestrator = Depends(get_orchestrator)):
    return orch.poll_state(kind, record_id)


@app.get("/agent/exchanges")
def exchanges(
    kind: str = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    orch: ExchangeOrchestrator = Depends(get_orchestrator),
):
    return orch.list_exchanges(kind, limit)


@app.get("/s/{code}")
def resolve_short_link(code: str, links: ShortLinkStore = Depends(get_shortener)):
    try:
        url = links.resolve(code)
    except _redis.RedisError as exc:
        logger.warning("short link lookup failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"statusCode": 503, "message": "Short link store unavailable", "error": "unavailable"},
        )
    if not url:
        raise HTTPException(404, "short link not found or expired")
    return RedirectResponse(url, status_code=302)


@app.get("/healthz")
def healthz():
    storage.health_check(engine)
    return {"ok": True, "ts": now_ts()}


@app.get("/readyz")
def readyz():
    return {
        "ok": True,
        "agent": agent_session.state.value,
        "pollIntervalSeconds": settings.poll_interval_seconds,
    }
