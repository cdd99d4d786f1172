"""Supabase audit sink adapter.

Writes entries through the hosted ``log_user_action`` procedure using the
official supabase-py client. The client is synchronous, so calls run in the
threadpool to keep the event loop free.
"""

from __future__ import annotations

import httpx
from fastapi.concurrency import run_in_threadpool
from postgrest.exceptions import APIError
from supabase import Client, create_client

from coach_gateway.adapters.audit.base import AbstractAuditSink, AuditEntry
from coach_gateway.core.errors import AuditSinkError


class SupabaseAuditSink(AbstractAuditSink):
    """Audit sink calling a Postgres function over the Supabase REST API."""

    def __init__(self, client: Client, rpc_name: str = "log_user_action") -> None:
        """Initialize the sink.

        Args:
            client: Configured supabase client (service role).
            rpc_name: Name of the audit procedure.
        """
        self.client = client
        self.rpc_name = rpc_name

    @classmethod
    def from_credentials(
        cls,
        url: str,
        service_role_key: str,
        rpc_name: str = "log_user_action",
    ) -> "SupabaseAuditSink":
        return cls(create_client(url, service_role_key), rpc_name=rpc_name)

    @staticmethod
    def build_params(entry: AuditEntry) -> dict:
        """Map an entry onto the procedure's ``p_``-prefixed arguments."""
        return {f"p_{name}": value for name, value in entry.to_dict().items()}

    def _call(self, params: dict) -> None:
        self.client.rpc(self.rpc_name, params).execute()

    async def write(self, entry: AuditEntry) -> None:
        try:
            await run_in_threadpool(self._call, self.build_params(entry))
        except APIError as exc:
            raise AuditSinkError(
                code="audit_rpc_failed",
                message=f"Audit procedure {self.rpc_name} failed: {exc.message}",
            ) from exc
        except httpx.HTTPError as exc:
            raise AuditSinkError(
                code="audit_transport_failed",
                message=f"Audit procedure {self.rpc_name} unreachable: {exc}",
            ) from exc
