"""Lifecycle of the single agent identity this controller drives."""
import logging
import threading
from enum import Enum
from typing import List, Optional

from app.crypto import seed_bytes
from app.errors import ConfigurationError, Conflict, NotInitialized, ServiceError, UpstreamFailure
from app.ledger import LedgerRegistrar, parse_network
from app.models import AgentDetails
from app.runtime import AgentRuntime

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class AgentSession:
    """Owns the live runtime handle.

    UNINITIALIZED -> READY happens once per process; a second initialize
    raises Conflict and leaves the live agent as it is.
    """

    def __init__(self, settings, runtime_factory=None, registrar: Optional[LedgerRegistrar] = None):
        self.settings = settings
        self.runtime_factory = runtime_factory or self._default_runtime
        self.registrar = registrar or LedgerRegistrar(settings)
        self.state = SessionState.UNINITIALIZED
        self.details: Optional[AgentDetails] = None
        self._runtime: Optional[AgentRuntime] = None
        self._endpoints: List[str] = []
        self._lock = threading.Lock()

    def _default_runtime(self):
        return AgentRuntime(
            self.settings.acapy_admin_url,
            api_key=self.settings.acapy_admin_api_key,
            timeout=self.settings.http_timeout_seconds,
        )

    @property
    def ready(self) -> bool:
        return self.state is SessionState.READY

    @property
    def runtime(self) -> AgentRuntime:
        if not self.ready:
            raise NotInitialized()
        return self._runtime

    @property
    def endpoints(self) -> List[str]:
        if not self.ready:
            raise NotInitialized()
        return list(self._endpoints)

    def initialize(self, seed: str, network: str) -> AgentDetails:
        with self._lock:
            if self.ready:
                raise Conflict(
                    f"An agent already initialized at port {self.details.admin_port}. "
                    f"Agent endpoint: {','.join(self._endpoints)}.",
                    {"endpoints": list(self._endpoints)},
                )
            self.settings.require()
            seed_bytes(seed)
            parse_network(network)
            runtime = self.runtime_factory()
            try:
                details, endpoints = self._bootstrap(runtime, seed, network)
            except Exception:
                runtime.close()
                raise
            self._runtime = runtime
            self._endpoints = endpoints
            self.details = details
            self.state = SessionState.READY
        logger.info(
            "Agent initialized - ID: %s, Admin Port: %s, Inbound Port: %s, endpoints: %s",
            details.agent_id,
            details.admin_port,
            details.inbound_port,
            endpoints,
        )
        return details

    def _bootstrap(self, runtime, seed, network):
        try:
            ready = runtime.is_ready()
        except ServiceError as exc:
            raise UpstreamFailure(f"Agent initialization failed: {exc.message}", exc.details) from exc
        if not ready:
            raise UpstreamFailure("Agent initialization failed: runtime is not ready")
        endpoints = list(self.settings.agent_endpoints) or runtime.default_endpoints()
        if not endpoints:
            raise ConfigurationError("No public endpoint configured for the agent")
        did = self.registrar.register(runtime, network, seed)
        details = AgentDetails(
            agent_id=self.settings.agent_id,
            admin_port=self.settings.admin_port,
            inbound_port=self.settings.inbound_port,
            did=did,
            endpoint=endpoints[0],
        )
        return details, endpoints

    def close(self):
        if self._runtime is not None:
            self._runtime.close()
