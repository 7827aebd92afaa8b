from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .db import Database
from .models import CustomerDetails

if TYPE_CHECKING:
    from .recorder import StepRecorder

CUSTOMER_ID_KEY = "dmt_customer_id"
SERVICE_ID_KEY = "dmt_service_id"
LANGUAGE_KEY = "dmt_language"
THEME_KEY = "dmt_theme"

DEFAULT_LANGUAGE = "en"
DEFAULT_THEME = "light"


class MissingSessionError(RuntimeError):
    """Raised when session state is accessed with no active customer workflow."""


@dataclass(frozen=True, slots=True)
class SessionContext:
    customer_id: str | None = None
    service_id: str | None = None


class SessionStore:
    """Session-scoped key/value storage backed by the meta table.

    Absent keys are a valid state and read back as ``None`` (or the default
    for preferences).
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def get(self, key: str) -> str | None:
        value = self.db.get_meta(key)
        return value or None

    def set(self, key: str, value: str | None) -> None:
        if value:
            self.db.set_meta(key, value)
        else:
            self.db.delete_meta(key)

    def context(self) -> SessionContext:
        return SessionContext(
            customer_id=self.get(CUSTOMER_ID_KEY),
            service_id=self.get(SERVICE_ID_KEY),
        )

    def save_context(self, context: SessionContext) -> None:
        self.set(CUSTOMER_ID_KEY, context.customer_id)
        self.set(SERVICE_ID_KEY, context.service_id)

    def clear_context(self) -> None:
        self.set(CUSTOMER_ID_KEY, None)
        self.set(SERVICE_ID_KEY, None)

    @property
    def language(self) -> str:
        return self.get(LANGUAGE_KEY) or DEFAULT_LANGUAGE

    @language.setter
    def language(self, value: str) -> None:
        self.set(LANGUAGE_KEY, value)

    @property
    def theme(self) -> str:
        return self.get(THEME_KEY) or DEFAULT_THEME

    def toggle_theme(self) -> str:
        new_theme = "dark" if self.theme == "light" else "light"
        self.set(THEME_KEY, new_theme)
        return new_theme


@dataclass(slots=True)
class WorkflowSession:
    context: SessionContext
    details: CustomerDetails
    recorder: StepRecorder

    def update_details(self, **changes) -> CustomerDetails:
        self.details = self.details.merged(**changes)
        return self.details


class SessionScope:
    """Owns the single active customer workflow for this process."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._session: WorkflowSession | None = None
        self.logger = logger or logging.getLogger(__name__)

    @property
    def active(self) -> bool:
        return self._session is not None

    @property
    def current(self) -> WorkflowSession:
        if self._session is None:
            raise MissingSessionError("No active customer session; register a customer first")
        return self._session

    def begin(self, session: WorkflowSession) -> WorkflowSession:
        if self._session is not None:
            self.logger.info(
                "Replacing active session for customer %s", self._session.context.customer_id
            )
        self._session = session
        return session

    def end(self) -> WorkflowSession | None:
        session, self._session = self._session, None
        return session
