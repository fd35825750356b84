"""
Payment State Store

Single in-memory source of truth for payment capture sessions.

Concurrency:
- Every read-modify-write runs under one re-entrant lock. Tools and
  callback routes run on the event loop; the prune job runs in the
  scheduler executor thread pool.
- Callers always receive deep copies; mutating a returned state never
  changes the store.

Absence is expected (a callback can race session creation), so mutators
log and return None for unknown keys instead of raising.
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..models.callbacks import PaymentCallback
from ..models.payment_session import (
    PaymentField,
    PaymentFieldState,
    PaymentSessionState,
    SessionStatus,
    session_key,
    utcnow,
)

logger = logging.getLogger(__name__)


class PaymentStateStore:
    """
    In-memory store for payment session states.

    Constructed once by the runtime and injected into every component
    that reads or writes sessions.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        """
        Initialize an empty store.

        Args:
            clock: Source of timestamps for last_updated (injectable for tests)
        """
        self._sessions: Dict[str, PaymentSessionState] = {}
        # Latest vendor callback per session key, merged across callbacks
        self._snapshots: Dict[str, PaymentCallback] = {}
        self._lock = threading.RLock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def locked(self) -> threading.RLock:
        """
        Lock for multi-step read-modify-write sequences.

        Store methods are re-entrant under it:

            with store.locked():
                session = store.get_session(call_sid, payment_sid)
                store.update_field_state(...)
        """
        return self._lock

    # ========================================================================
    # Session Lifecycle
    # ========================================================================

    def create_session(self, call_sid: str, payment_sid: str) -> PaymentSessionState:
        """
        Create a fresh session in the initialized state.

        An existing session under the same key is replaced, not merged.

        Returns:
            Snapshot of the created session
        """
        session = PaymentSessionState(
            call_sid=call_sid,
            payment_sid=payment_sid,
            last_updated=self._clock(),
        )

        with self._lock:
            key = session.session_key
            if key in self._sessions:
                logger.info(f"Replacing existing payment session {key}")
            self._sessions[key] = session
            logger.info(f"Created payment session {key}")
            return session.model_copy(deep=True)

    def ensure_session(self, call_sid: str, payment_sid: str) -> PaymentSessionState:
        """Return the existing session, creating it only when absent."""
        with self._lock:
            existing = self._sessions.get(session_key(call_sid, payment_sid))
            if existing is not None:
                return existing.model_copy(deep=True)
            return self.create_session(call_sid, payment_sid)

    def get_session(self, call_sid: str, payment_sid: str) -> Optional[PaymentSessionState]:
        with self._lock:
            session = self._sessions.get(session_key(call_sid, payment_sid))
            return session.model_copy(deep=True) if session else None

    def list_sessions(self) -> List[PaymentSessionState]:
        with self._lock:
            return [session.model_copy(deep=True) for session in self._sessions.values()]

    # ========================================================================
    # Mutations
    # ========================================================================

    def update_field_state(
        self,
        call_sid: str,
        payment_sid: str,
        field: PaymentField,
        **update: Any
    ) -> Optional[PaymentSessionState]:
        """
        Merge a partial update into one field of a session.

        Args:
            call_sid: Call SID
            payment_sid: Payment SID
            field: "card_number", "security_code" or "expiration_date"
            **update: PaymentFieldState attributes to overwrite

        Returns:
            Updated session snapshot, or None if the session does not exist

        Raises:
            ValueError: If field or update keys are not valid field attributes
        """
        def apply(session: PaymentSessionState) -> None:
            current = session.field(field)
            merged = PaymentFieldState.model_validate({**current.model_dump(), **update})
            setattr(session, field, merged)

        return self._mutate(call_sid, payment_sid, apply, f"update field {field}")

    def update_session_status(
        self,
        call_sid: str,
        payment_sid: str,
        status: SessionStatus,
        error_message: Optional[str] = None
    ) -> Optional[PaymentSessionState]:
        """
        Set the session status.

        The error message is only recorded when status is "error"; leaving
        the error state clears it.

        Raises:
            ValueError: If status is unknown, or is "complete" (a session only
                completes through set_payment_token, which records the token)
        """
        if status == "complete":
            raise ValueError("Use set_payment_token to complete a payment session")
        if status not in ("initialized", "in-progress", "error"):
            raise ValueError(f"Unknown session status: {status}")

        def apply(session: PaymentSessionState) -> None:
            session.status = status
            if status == "error":
                session.error_message = error_message or "Unknown error"
            else:
                session.error_message = None

        return self._mutate(call_sid, payment_sid, apply, f"set status {status}")

    def set_payment_token(
        self,
        call_sid: str,
        payment_sid: str,
        token: str
    ) -> Optional[PaymentSessionState]:
        """
        Record the vendor token and mark the session complete.

        This is the only path to the complete status and it applies from
        any prior status, including error.
        """
        def apply(session: PaymentSessionState) -> None:
            session.token = token
            session.status = "complete"
            session.error_message = None

        return self._mutate(call_sid, payment_sid, apply, "set payment token")

    def reset_field(
        self,
        call_sid: str,
        payment_sid: str,
        field: PaymentField
    ) -> Optional[PaymentSessionState]:
        """
        Clear a field for re-entry.

        attempts is carried forward and incremented by one.
        """
        def apply(session: PaymentSessionState) -> None:
            attempts = session.field(field).attempts
            setattr(session, field, PaymentFieldState(attempts=attempts + 1))

        return self._mutate(call_sid, payment_sid, apply, f"reset field {field}")

    def _mutate(
        self,
        call_sid: str,
        payment_sid: str,
        apply: Callable[[PaymentSessionState], None],
        action: str
    ) -> Optional[PaymentSessionState]:
        key = session_key(call_sid, payment_sid)

        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                logger.warning(f"Session not found for call {call_sid}, payment {payment_sid} ({action})")
                return None

            # Work on a copy so a failed update leaves the stored session intact
            working = session.model_copy(deep=True)
            apply(working)
            working.last_updated = self._clock()
            self._sessions[key] = working

            logger.debug(f"Payment session {key}: {action}")
            return working.model_copy(deep=True)

    # ========================================================================
    # Vendor Snapshots
    # ========================================================================

    def record_callback(self, callback: PaymentCallback) -> Optional[PaymentCallback]:
        """
        Merge a vendor callback into the latest snapshot for its session.

        Callbacks without both identifiers are ignored.
        """
        if not callback.call_sid or not callback.payment_sid:
            return None

        key = session_key(callback.call_sid, callback.payment_sid)
        with self._lock:
            previous = self._snapshots.get(key)
            merged = previous.merged_with(callback) if previous else callback.model_copy()
            self._snapshots[key] = merged
            return merged.model_copy()

    def get_snapshot(self, call_sid: str, payment_sid: str) -> Optional[PaymentCallback]:
        with self._lock:
            snapshot = self._snapshots.get(session_key(call_sid, payment_sid))
            return snapshot.model_copy() if snapshot else None

    # ========================================================================
    # Eviction
    # ========================================================================

    def prune_stale(self, max_age: timedelta) -> int:
        """
        Evict sessions not updated within max_age.

        Snapshots belonging to evicted sessions are dropped too, as are
        orphaned snapshots whose session was never created.

        Returns:
            Number of sessions evicted
        """
        cutoff = self._clock() - max_age

        with self._lock:
            stale = [key for key, session in self._sessions.items() if session.last_updated < cutoff]
            for key in stale:
                del self._sessions[key]
                self._snapshots.pop(key, None)

            orphaned = [key for key in self._snapshots if key not in self._sessions]
            for key in orphaned:
                del self._snapshots[key]

        if stale:
            logger.info(f"Evicted {len(stale)} stale payment sessions (older than {max_age})")
        return len(stale)
