"""Read-only views of runtime-owned exchange records.

The tracker never loops or waits. Callers poll it every few seconds until
a record reports a terminal state ("done" or "abandoned"); any other state
string is passed through as-is.
"""
from typing import Dict, Optional

from app.models import ConnectionState, CredentialState, ProofState


def _verified(value) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    return str(value).lower() == "true"


class ExchangeStateTracker:
    def __init__(self, runtime):
        self.runtime = runtime

    def get_credential_state(self, record_id: str) -> CredentialState:
        record = self.runtime.get_credential_record(record_id)
        return CredentialState(state=record.get("state"), error_message=record.get("error_msg"))

    def get_proof_state(self, record_id: str) -> ProofState:
        record = self.runtime.get_proof_record(record_id)
        return ProofState(
            state=record.get("state"),
            verified=_verified(record.get("verified")),
            error_message=record.get("error_msg"),
        )

    def get_connection_state(self, out_of_band_id: str) -> ConnectionState:
        # several holders may answer one multi-use invitation; report the first
        connections = self.runtime.find_connections(out_of_band_id)
        if not connections:
            return ConnectionState()
        first = connections[0]
        return ConnectionState(state=first.get("state"), connection_id=first.get("connection_id"))

    def get_revealed_attributes(self, record_id: str) -> Optional[Dict[str, str]]:
        record = self.runtime.get_proof_record(record_id)
        pres = (record.get("by_format") or {}).get("pres") or {}
        for fmt in ("anoncreds", "indy"):
            revealed = ((pres.get(fmt) or {}).get("requested_proof") or {}).get("revealed_attrs")
            if revealed:
                return {referent: attr.get("raw") for referent, attr in revealed.items()}
        return None
