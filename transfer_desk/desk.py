from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from .backend import Backend, PersistResult
from .models import Customer, CustomerDetails
from .recorder import StepRecorder
from .session import SessionContext, SessionScope, SessionStore, WorkflowSession
from .timeutil import utc_now


def details_from_customer(customer: Customer) -> CustomerDetails:
    return CustomerDetails(
        vehicle_number=customer.vehicle_number,
        full_name=customer.name,
        contact_number=customer.phone,
        service_type=customer.service_type,
        transfer_type=customer.transfer_type,
    )


class ServiceDesk:
    """Runs the live customer workflow: registration, step timing, session end."""

    def __init__(
        self,
        backend: Backend,
        store: SessionStore,
        scope: SessionScope | None = None,
        clock: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.backend = backend
        self.store = store
        self.scope = scope or SessionScope()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def open_session(self, context: SessionContext, details: CustomerDetails) -> WorkflowSession:
        recorder = StepRecorder(self.backend, context, clock=self.clock)
        session = self.scope.begin(WorkflowSession(context=context, details=details, recorder=recorder))
        self.store.save_context(context)
        return session

    async def register_customer(self, details: CustomerDetails, service_id: str | None = None) -> WorkflowSession:
        customer = await self.backend.customers.create(details)
        session = self.open_session(SessionContext(customer_id=customer.id, service_id=service_id), details)
        session.recorder.start_step(1)
        self.logger.info("Customer registered: customer=%s service=%s", customer.id, service_id)
        return session

    async def restore_session(self) -> WorkflowSession | None:
        """Reopen the stored customer's session with the current step running again.

        Timings from before the restart are lost; the first step restarts now.
        """
        context = self.store.context()
        if not context.customer_id:
            return None

        customer = await self.backend.customers.get(context.customer_id)
        if customer is None:
            self.logger.warning("Stored customer %s no longer exists; clearing session", context.customer_id)
            self.store.clear_context()
            return None

        session = self.open_session(context, details_from_customer(customer))
        session.recorder.start_step(session.recorder.current_step)
        self.logger.info("Restored session for customer %s", customer.id)
        return session

    async def complete_current_step(self) -> tuple[int, PersistResult]:
        recorder = self.scope.current.recorder
        step_id = recorder.current_step
        result = await recorder.complete_step(step_id)
        return step_id, result

    def set_step(self, step_id: int) -> int:
        """Move the workflow to another step and start timing it."""
        recorder = self.scope.current.recorder
        recorder.set_current_step(step_id)
        recorder.start_step(step_id)
        return step_id

    def end_session(self) -> WorkflowSession | None:
        session = self.scope.end()
        self.store.clear_context()
        if session is not None:
            self.logger.info("Session ended: customer=%s", session.context.customer_id)
        return session
