"""
Approval Broker

Holds outstanding approval requests and resolves them when an approver
responds or the approval timeout elapses. Each request is backed by a
future that the waiting tool call awaits, so only that call blocks; the
rest of the step keeps running.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from stepforce.core.domain.models import ApprovalRequest, ApprovalStatus, utc_now
from stepforce.core.interfaces.store import KeyedStore
from stepforce.infrastructure.persistence.memory_store import InMemoryStore


@dataclass
class PendingApproval:
    request: ApprovalRequest
    future: asyncio.Future
    timer: asyncio.TimerHandle


class ApprovalBroker:
    """Wait/notify hub for human approval of gated tool calls."""

    def __init__(
        self,
        timeout_seconds: float = 300.0,
        store: Optional[KeyedStore[PendingApproval]] = None,
    ):
        """
        Args:
            timeout_seconds: Time after which an unanswered request expires
            store: Keyed store for pending entries (in-process by default)
        """
        self.timeout_seconds = timeout_seconds
        self._store: KeyedStore[PendingApproval] = store if store is not None else InMemoryStore()
        self.logger = structlog.get_logger().bind(component="approval_broker")

    def request(self, approval: ApprovalRequest, timeout: Optional[float] = None) -> str:
        """
        Register a pending approval and start its expiry timer.

        Must be called from within a running event loop.

        Returns:
            The approval id
        """
        loop = asyncio.get_running_loop()
        timeout = self.timeout_seconds if timeout is None else timeout

        future = loop.create_future()
        timer = loop.call_later(timeout, self._expire, approval.id)
        self._store.put(approval.id, PendingApproval(approval, future, timer))

        self.logger.info(
            "approval_requested",
            approval_id=approval.id,
            execution_id=approval.execution_id,
            tool=approval.tool_name,
            owner_id=approval.owner_id,
            timeout_seconds=timeout,
        )
        return approval.id

    async def wait(self, approval_id: str) -> ApprovalRequest:
        """
        Block until the approval is resolved.

        If the waiting task is cancelled the request is withdrawn from the
        pending set before the cancellation propagates.

        Raises:
            KeyError: If the approval is not pending
        """
        entry = self._store.get(approval_id)
        if entry is None:
            raise KeyError(f"Approval not pending: {approval_id}")

        try:
            return await asyncio.shield(entry.future)
        except asyncio.CancelledError:
            self._resolve(approval_id, ApprovalStatus.EXPIRED, note="Execution cancelled")
            raise

    def respond(self, approval_id: str, approved: bool, note: Optional[str] = None) -> bool:
        """
        Answer a pending approval.

        Returns:
            False if the approval is unknown or already resolved; the first
            resolution always wins.
        """
        status = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
        return self._resolve(approval_id, status, note=note) is not None

    def pending(self, owner_id: str) -> list[ApprovalRequest]:
        """Pending approvals addressed to an owner, oldest first."""
        requests = [
            entry.request
            for entry in self._store.values()
            if entry.request.owner_id == owner_id
        ]
        return sorted(requests, key=lambda r: r.created_at)

    def get(self, approval_id: str) -> Optional[ApprovalRequest]:
        entry = self._store.get(approval_id)
        return entry.request if entry else None

    def _expire(self, approval_id: str) -> None:
        request = self._resolve(approval_id, ApprovalStatus.EXPIRED, note="Approval timed out")
        if request is not None:
            self.logger.warning(
                "approval_expired",
                approval_id=approval_id,
                execution_id=request.execution_id,
                tool=request.tool_name,
            )

    def _resolve(
        self, approval_id: str, status: ApprovalStatus, note: Optional[str] = None
    ) -> Optional[ApprovalRequest]:
        entry = self._store.delete(approval_id)
        if entry is None:
            return None

        entry.timer.cancel()
        request = entry.request
        request.status = status
        request.note = note
        request.responded_at = utc_now()

        if not entry.future.done():
            entry.future.set_result(request)

        self.logger.info(
            "approval_resolved",
            approval_id=approval_id,
            execution_id=request.execution_id,
            status=status.value,
        )
        return request
