"""
Data synchronization controller.

One ``DataSession`` per authenticated identity. It decides which store backs
the session (local for demo identities, remote otherwise), keeps the in-memory
collections the UI reads, and hands every core operation an explicit
``SessionContext`` instead of ambient globals.

State machine:
    unauthenticated -> resolving-identity -> demo-mode
                                          -> cloud-mode -> subscribed
    (any) -> torn-down

Cloud sessions hold one live subscription per collection and replace a
collection wholesale on every delivery. Demo sessions load the local tables
once and read them straight from the local store, which writes every change
through immediately.
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from flask import current_app

from ..models.records import (
    CATEGORIES,
    CLIENTS,
    CONFIG,
    EXPENSES,
    PRODUCTS,
    SALES,
    SUPPLIERS,
    AppConfig,
)
from ..stores import DocumentStore, StoreError, StoreRegistry, Subscription, get_stores
from ..time_utils import utcnow
from ..validation import ValidationError
from .notification_service import INFO, WARNING, Notifier
from .settings_service import config_from_records, ensure_defaults, load_config

logger = logging.getLogger(__name__)

OWNER = "owner"
EMPLOYEE = "employee"
ROLES = (OWNER, EMPLOYEE)

SESSIONS_KEY = "bodega.sessions"

SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)  # Maximum session length
SESSION_IDLE_TIMEOUT = timedelta(hours=2)        # Activity timeout


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    RESOLVING_IDENTITY = "resolving-identity"
    DEMO_MODE = "demo-mode"
    CLOUD_MODE = "cloud-mode"
    SUBSCRIBED = "subscribed"
    TORN_DOWN = "torn-down"


@dataclass(frozen=True)
class CollectionSpec:
    name: str
    order_by: Optional[str] = None
    descending: bool = False
    owner_only: bool = False


COLLECTION_SPECS = (
    CollectionSpec(PRODUCTS),
    CollectionSpec(CATEGORIES),
    CollectionSpec(SALES, order_by="date", descending=True),
    CollectionSpec(CLIENTS),
    CollectionSpec(SUPPLIERS, owner_only=True),
    CollectionSpec(EXPENSES),
    CollectionSpec(CONFIG),
)
SPECS_BY_NAME = {spec.name: spec for spec in COLLECTION_SPECS}


@dataclass(frozen=True)
class Identity:
    """Authenticated identity as supplied by the identity provider."""
    uid: str
    name: str = "Usuario"
    role: str = EMPLOYEE
    is_demo: bool = False

    @property
    def is_owner(self) -> bool:
        return self.role == OWNER

    @classmethod
    def from_claims(cls, claims: dict, *, demo_prefix: str = "demo-") -> "Identity":
        if not isinstance(claims, dict):
            raise ValidationError("Invalid identity claims")
        uid = str(claims.get("uid") or "").strip()
        if not uid:
            raise ValidationError("uid is required")
        role = claims.get("role") or EMPLOYEE
        if role not in ROLES:
            raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
        is_demo = bool(claims.get("demo")) or uid.startswith(demo_prefix)
        return cls(
            uid=uid,
            name=str(claims.get("name") or "Usuario").strip(),
            role=role,
            is_demo=is_demo,
        )

    def to_dict(self) -> dict:
        return {"uid": self.uid, "name": self.name, "role": self.role, "demo": self.is_demo}


@dataclass
class SessionContext:
    """Everything a core operation needs: store handle, role and config snapshot."""
    identity: Identity
    store: DocumentStore
    config: AppConfig
    notifier: Notifier = field(default_factory=Notifier)

    @property
    def is_owner(self) -> bool:
        return self.identity.is_owner

    @property
    def is_demo(self) -> bool:
        return self.identity.is_demo

    def can(self, capability: str) -> bool:
        if self.is_owner:
            return True
        return bool(getattr(self.config.permissions, capability, False))

    def notify(self, message: str, severity: str = INFO) -> None:
        self.notifier.notify(message, severity)


class DataSession:
    def __init__(self, stores: StoreRegistry, notifier: Optional[Notifier] = None):
        self.stores = stores
        self.notifier = notifier or Notifier()
        self.state = SessionState.UNAUTHENTICATED
        self.identity: Optional[Identity] = None
        self.store: Optional[DocumentStore] = None
        self._collections: dict[str, list[dict]] = {}
        self._config = AppConfig()
        self._subscriptions: list[Subscription] = []
        self._lock = threading.RLock()

    # -- lifecycle ------------------------------------------------------------
    def start(self, identity: Identity) -> "DataSession":
        if self.state != SessionState.UNAUTHENTICATED:
            raise RuntimeError(f"Session cannot start from state {self.state.value}")

        self.state = SessionState.RESOLVING_IDENTITY
        self.identity = identity
        self.store = self.stores.for_mode(identity.is_demo)

        try:
            ensure_defaults(self.store)
        except StoreError as exc:
            logger.warning("Could not seed defaults for %s session: %s", self.store.kind, exc)
            self.notifier.notify("Store unavailable; working with empty data", WARNING)

        if identity.is_demo:
            self.store.load(spec.name for spec in COLLECTION_SPECS)
            self.state = SessionState.DEMO_MODE
        else:
            self.state = SessionState.CLOUD_MODE
            self._subscribe_all()
            self.state = SessionState.SUBSCRIBED

        logger.info("Session for %s started in %s", identity.uid, self.state.value)
        return self

    def end(self) -> None:
        """Cancel subscriptions first, then drop the cached state."""
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.cancel()
        with self._lock:
            self.state = SessionState.TORN_DOWN
            self._collections = {}
            self._config = AppConfig()
        if self.identity is not None:
            logger.info("Session for %s torn down", self.identity.uid)

    @property
    def is_active(self) -> bool:
        return self.state in (SessionState.DEMO_MODE, SessionState.SUBSCRIBED)

    @property
    def mode(self) -> Optional[str]:
        if self.store is None:
            return None
        return self.store.kind

    # -- subscriptions --------------------------------------------------------
    def _visible(self, spec: CollectionSpec) -> bool:
        return not spec.owner_only or (self.identity is not None and self.identity.is_owner)

    def _subscribe_all(self) -> None:
        for spec in COLLECTION_SPECS:
            if not self._visible(spec):
                self._collections[spec.name] = []
                continue
            subscription = self.store.subscribe(
                spec.name,
                lambda records, name=spec.name: self._deliver(name, records),
                lambda exc, name=spec.name: self._failed(name, exc),
                order_by=spec.order_by,
                descending=spec.descending,
            )
            self._subscriptions.append(subscription)

    def _deliver(self, name: str, records: list[dict]) -> None:
        with self._lock:
            if self.state == SessionState.TORN_DOWN:
                return
            if name == CONFIG:
                self._config = config_from_records(records)
            else:
                self._collections[name] = records

    def _failed(self, name: str, exc: Exception) -> None:
        logger.warning("Subscription to %s failed: %s", name, exc)
        with self._lock:
            if self.state == SessionState.TORN_DOWN:
                return
            self._collections[name] = []
        self.notifier.notify(f"Could not load {name}", WARNING)

    # -- reads ----------------------------------------------------------------
    def collection(self, name: str) -> list[dict]:
        spec = SPECS_BY_NAME.get(name)
        if spec is None:
            raise KeyError(name)
        if not self._visible(spec) or not self.is_active:
            return []
        if self.state == SessionState.DEMO_MODE:
            return self.store.list(name, order_by=spec.order_by, descending=spec.descending)
        with self._lock:
            return list(self._collections.get(name, []))

    @property
    def config(self) -> AppConfig:
        if self.state == SessionState.DEMO_MODE:
            return load_config(self.store)
        with self._lock:
            return self._config

    def snapshot(self) -> dict:
        data = {spec.name: self.collection(spec.name) for spec in COLLECTION_SPECS if spec.name != CONFIG}
        data[CONFIG] = self.config.to_dict()
        return data

    def context(self) -> SessionContext:
        if not self.is_active:
            raise RuntimeError(f"Session is not active ({self.state.value})")
        return SessionContext(
            identity=self.identity,
            store=self.store,
            config=self.config,
            notifier=self.notifier,
        )

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "mode": self.mode,
            "identity": self.identity.to_dict() if self.identity else None,
        }


@dataclass
class _RegisteredSession:
    session: DataSession
    created_at: datetime
    last_seen: datetime


class SessionRegistry:
    """
    Token -> DataSession map for the running application.

    Sessions expire after an absolute lifetime or an idle period. An expired
    session is torn down (its subscriptions cancelled) when its token is next
    used or when any new session is added.
    """

    def __init__(
        self,
        absolute_timeout: timedelta = SESSION_ABSOLUTE_TIMEOUT,
        idle_timeout: timedelta = SESSION_IDLE_TIMEOUT,
    ):
        self.absolute_timeout = absolute_timeout
        self.idle_timeout = idle_timeout
        self._sessions: dict[str, _RegisteredSession] = {}
        self._lock = threading.Lock()

    def _is_stale(self, entry: _RegisteredSession, now: datetime) -> bool:
        if now - entry.created_at > self.absolute_timeout:
            return True
        return now - entry.last_seen > self.idle_timeout

    def add(self, session: DataSession) -> str:
        self.expire_stale()
        token = secrets.token_urlsafe(32)
        now = utcnow()
        with self._lock:
            self._sessions[token] = _RegisteredSession(session, created_at=now, last_seen=now)
        return token

    def get(self, token: str) -> Optional[DataSession]:
        with self._lock:
            entry = self._sessions.get(token)
        return entry.session if entry else None

    def touch(self, token: str) -> Optional[DataSession]:
        """Session for the token with its activity time refreshed; None if unknown or expired."""
        now = utcnow()
        with self._lock:
            entry = self._sessions.get(token)
            if entry is None:
                return None
            if not self._is_stale(entry, now):
                entry.last_seen = now
                return entry.session
            del self._sessions[token]
        logger.info("Session for %s expired", entry.session.identity.uid)
        entry.session.end()
        return None

    def expire_stale(self) -> int:
        """Tear down every expired session; returns how many were dropped."""
        now = utcnow()
        with self._lock:
            stale = [t for t, entry in self._sessions.items() if self._is_stale(entry, now)]
            expired = [self._sessions.pop(t).session for t in stale]
        for session in expired:
            session.end()
        if expired:
            logger.info("Expired %d idle or outdated sessions", len(expired))
        return len(expired)

    def pop(self, token: str) -> Optional[DataSession]:
        with self._lock:
            entry = self._sessions.pop(token, None)
        return entry.session if entry else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def close_all(self) -> None:
        with self._lock:
            entries, self._sessions = list(self._sessions.values()), {}
        for entry in entries:
            entry.session.end()


def init_sessions(app) -> SessionRegistry:
    registry = SessionRegistry(
        absolute_timeout=timedelta(seconds=app.config["BODEGA_SESSION_ABSOLUTE_TIMEOUT"]),
        idle_timeout=timedelta(seconds=app.config["BODEGA_SESSION_IDLE_TIMEOUT"]),
    )
    app.extensions[SESSIONS_KEY] = registry
    return registry


def _registry() -> SessionRegistry:
    return current_app.extensions[SESSIONS_KEY]


def open_session(claims: dict) -> tuple[str, DataSession]:
    identity = Identity.from_claims(claims, demo_prefix=current_app.config["BODEGA_DEMO_PREFIX"])
    session = DataSession(get_stores()).start(identity)
    return _registry().add(session), session


def validate_session(token: str) -> Optional[DataSession]:
    """Active session for the token, or None. Stale sessions are torn down here."""
    session = _registry().touch(token)
    if session is None or not session.is_active:
        return None
    return session


def close_session(token: str) -> bool:
    session = _registry().pop(token)
    if session is None:
        return False
    session.end()
    return True
