"""
Notification Dispatcher - role-based push fan-out over Firebase Cloud Messaging.

DESIGN PRINCIPLES:
- Recipients are resolved from users/{id}.role and users/{id}.fcmToken
- One multicast per fan-out (chunked to the FCM limit)
- Stale tokens are pruned from their owning user records in one batch
- Other per-token failures are logged only; the token is kept for next time
- An unreachable push service propagates so the triggering event is retried
- A payload rejected for every token never prunes those tokens
"""

from firebase_admin import exceptions, firestore, messaging
from cityflux.config.firebase import get_db, get_messaging
from cityflux.models.user import DirectSendResult, DispatchResult, UserRole
from cityflux.utils.firestore_helpers import is_valid_document_id, where_filter
from typing import Any, Dict, Iterable, List, Optional
import logging

logger = logging.getLogger(__name__)


def _role_value(role) -> str:
    return role.value if isinstance(role, UserRole) else str(role)


def _stringify_data(data: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """FCM data payloads only accept string values."""
    if not data:
        return {}
    return {str(k): str(v) for k, v in data.items() if v is not None}


class NotificationDispatcher:
    """
    Sends push notifications to users by role, or to a single user.
    """

    # FCM accepts at most 500 tokens per multicast
    MAX_MULTICAST_TOKENS = 500
    # Firestore accepts at most 500 writes per batch
    MAX_BATCH_WRITES = 500

    # Errors meaning the token will never work again
    STALE_TOKEN_ERRORS = (
        messaging.UnregisteredError,
        messaging.SenderIdMismatchError,
    )

    # InvalidArgumentError is also raised for bad payloads; only these messages blame the token
    INVALID_TOKEN_MARKERS = (
        "registration token",
        "registration-token",
    )

    # Errors worth retrying the whole event for
    TRANSIENT_ERRORS = (
        exceptions.UnavailableError,
        exceptions.InternalError,
        exceptions.DeadlineExceededError,
        exceptions.UnknownError,
        exceptions.ResourceExhaustedError,
    )

    def __init__(self, db=None, messenger=None):
        self.db = db if db is not None else get_db()
        self.messenger = messenger if messenger is not None else get_messaging()

    @classmethod
    def is_stale_token_error(cls, error: Optional[Exception]) -> bool:
        if isinstance(error, cls.STALE_TOKEN_ERRORS):
            return True
        if isinstance(error, exceptions.InvalidArgumentError):
            message = str(error).lower()
            return any(marker in message for marker in cls.INVALID_TOKEN_MARKERS)
        return False

    @classmethod
    def _chunk_wide_error(cls, responses) -> Optional[Exception]:
        """
        Return the error that failed every message of a multicast, if there is one.

        The SDK does not raise when FCM is unreachable or rejects the payload;
        each message comes back with the same kind of error instead.
        """
        errors = [r.exception for r in responses if not r.success]
        if not errors or len(errors) != len(responses):
            return None
        if all(isinstance(e, cls.TRANSIENT_ERRORS) for e in errors):
            return errors[0]
        if all(isinstance(e, exceptions.InvalidArgumentError) for e in errors) and len(responses) > 1:
            if len({str(e) for e in errors}) == 1:
                return errors[0]
        return None

    def notify_roles(
        self,
        roles: Iterable,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None
    ) -> DispatchResult:
        """
        Multicast a notification to every user whose role is in `roles`.

        Args:
            roles: UserRole members or raw role strings
            title: Notification title
            body: Notification body
            data: Optional data payload (values are stringified)

        Returns:
            DispatchResult with success/failure counts and number of pruned tokens.
            Zero recipients is a normal outcome: {success: 0, failure: 0}.

        Raises:
            FirebaseError: if the send call itself fails, or every message of a
                chunk failed with a transient error (e.g. FCM unreachable)
        """
        role_values = [_role_value(r) for r in roles]
        owners = self._resolve_tokens(role_values)

        if not owners:
            logger.info(f"No tokens for roles: {role_values}")
            return DispatchResult()

        tokens = list(owners)
        notification = messaging.Notification(title=title, body=body)
        payload = _stringify_data(data)

        result = DispatchResult()
        stale: List[str] = []

        for start in range(0, len(tokens), self.MAX_MULTICAST_TOKENS):
            chunk = tokens[start:start + self.MAX_MULTICAST_TOKENS]
            message = messaging.MulticastMessage(tokens=chunk, notification=notification, data=payload)

            try:
                response = self.messenger.send_each_for_multicast(message)
            except Exception as e:
                logger.error(f"FCM send error for roles {role_values}: {e}")
                raise

            chunk_error = self._chunk_wide_error(response.responses)
            if isinstance(chunk_error, self.TRANSIENT_ERRORS):
                logger.error(f"FCM unavailable for roles {role_values}: {chunk_error}")
                raise chunk_error

            result.success += response.success_count
            result.failure += response.failure_count

            if chunk_error is not None:
                # payload rejected for every token; the tokens are not at fault
                logger.error(f"FCM rejected the message for roles {role_values}, keeping tokens: {chunk_error}")
                continue

            for token, send_response in zip(chunk, response.responses):
                if send_response.success:
                    continue
                if self.is_stale_token_error(send_response.exception):
                    stale.append(token)
                else:
                    logger.warning(f"Push to token {token[:12]}... failed, keeping token: {send_response.exception}")

        logger.info(f"Sent to {result.success}/{len(tokens)} devices (roles={role_values})")

        if stale:
            result.pruned = self._prune_tokens(stale, owners)

        return result

    def send_to_user(
        self,
        user_id: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None
    ) -> DirectSendResult:
        """
        Send a single-target push to one user's device.

        Missing users and users without a token are soft no-ops. A stale
        token is removed from the user record. Transient FCM failures propagate;
        other Firebase errors are logged.
        """
        if not is_valid_document_id(user_id):
            logger.warning(f"User id {user_id!r} is not a valid document id")
            return DirectSendResult(user_id=str(user_id), reason="user not found")

        user_ref = self.db.collection("users").document(user_id)
        user_doc = user_ref.get()

        if not user_doc.exists:
            logger.warning(f"User {user_id} not found")
            return DirectSendResult(user_id=user_id, reason="user not found")

        token = (user_doc.to_dict() or {}).get("fcmToken")
        if not token:
            logger.info(f"User {user_id} has no FCM token")
            return DirectSendResult(user_id=user_id, reason="no push token")

        message = messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body),
            data=_stringify_data(data)
        )

        try:
            message_id = self.messenger.send(message)
        except exceptions.FirebaseError as e:
            if self.is_stale_token_error(e):
                logger.warning(f"Stale token for user {user_id}, removing it: {e}")
                user_ref.update({"fcmToken": firestore.DELETE_FIELD})
                return DirectSendResult(user_id=user_id, pruned=True, reason="stale token")
            if isinstance(e, self.TRANSIENT_ERRORS):
                logger.error(f"FCM unavailable while notifying user {user_id}", exc_info=True)
                raise
            logger.error(f"Error sending notification to user {user_id}: {e}")
            return DirectSendResult(user_id=user_id, reason=str(e))

        logger.info(f"Notification sent to user {user_id}")
        return DirectSendResult(user_id=user_id, sent=True, message_id=message_id)

    def _resolve_tokens(self, roles: List[str]) -> Dict[str, List[Any]]:
        """Map each distinct push token to the user document references holding it."""
        owners: Dict[str, List[Any]] = {}
        if not roles:
            return owners

        query = where_filter(self.db.collection("users"), "role", "in", roles)
        for doc in query.stream():
            token = (doc.to_dict() or {}).get("fcmToken")
            if token and isinstance(token, str):
                owners.setdefault(token, []).append(doc.reference)
        return owners

    def _prune_tokens(self, stale: List[str], owners: Dict[str, List[Any]]) -> int:
        refs = [ref for token in stale for ref in owners.get(token, [])]

        for start in range(0, len(refs), self.MAX_BATCH_WRITES):
            batch = self.db.batch()
            for ref in refs[start:start + self.MAX_BATCH_WRITES]:
                batch.update(ref, {"fcmToken": firestore.DELETE_FIELD})
            batch.commit()

        logger.info(f"Cleaned {len(stale)} stale tokens ({len(refs)} user records)")
        return len(stale)


# Global service instance (singleton pattern)
_dispatcher = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """
    Get or create NotificationDispatcher singleton instance.
    """
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
