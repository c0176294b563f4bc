"""
Payment reconciliation.

A payment moves ``pending -> completed`` or ``pending -> failed`` and
never leaves a terminal state.  Every entry point (gateway webhook,
client verify call, manual settlement by the organizer) goes through
``PaymentService._settle``, whose conditional ``UPDATE ... WHERE
status = 'pending'`` succeeds for exactly one caller.  Only that
caller reserves slots and sends the confirmation email; every other
caller observes the terminal state and does nothing.
"""

import json
import logging
from typing import Any, Dict, Optional

from evntly_api.app.core.db import format_timestamp, get_connection, transaction, utcnow
from evntly_api.app.core.exceptions import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    SignatureError,
    ValidationError,
)
from evntly_api.app.core.security import hmac_sha256_hex, signatures_match
from evntly_api.app.schemas.payment import ManualSettlement, VerificationResult, WebhookAck
from evntly_api.app.services.activity_service import reserve_slots
from evntly_api.app.services.notification_service import notify_quietly

logger = logging.getLogger(__name__)

SUCCESS_EVENTS = {"payment.captured", "order.paid"}
FAILURE_EVENTS = {"payment.failed"}

PAYMENT_CONTEXT_SELECT = """
    SELECT p.id AS payment_id, p.status AS payment_status, p.payment_method,
           p.ticket_count AS payment_tickets, p.provider_payment_id,
           r.id AS registration_id, r.user_id,
           a.id AS activity_id,
           COALESCE(a.organizer_id, c.organizer_id) AS organizer_id
    FROM payments p
    JOIN activity_registrations r ON r.id = p.registration_id
    JOIN activities a ON a.id = r.activity_id
    LEFT JOIN clubs c ON c.id = a.club_id
"""


def extract_order_id(event: Dict[str, Any]) -> Optional[str]:
    """Gateway order id of a webhook event.

    Payment events carry it on the payment entity; ``order.paid`` also
    carries the order entity itself.
    """
    payload = event.get("payload") or {}
    payment_entity = (payload.get("payment") or {}).get("entity") or {}
    if payment_entity.get("order_id"):
        return payment_entity["order_id"]
    order_entity = (payload.get("order") or {}).get("entity") or {}
    return order_entity.get("id")


def extract_gateway_payment_id(event: Dict[str, Any]) -> Optional[str]:
    payload = event.get("payload") or {}
    return ((payload.get("payment") or {}).get("entity") or {}).get("id")


class SettlementOutcome:
    """What ``_settle`` did; ``performed`` is true for the one winning caller."""

    def __init__(
        self, performed: bool, status: str, slots_reserved: bool = False, reason: Optional[str] = None
    ) -> None:
        self.performed = performed
        self.status = status
        self.slots_reserved = slots_reserved
        # Why a completed payment holds no slots: capacity_exhausted or registration_canceled.
        self.reason = reason


class PaymentService:
    """Advances payments through their state machine.

    Parameters
    ----------
    notifier : object, optional
        Provides ``send_registration_confirmation``; ``None`` disables
        confirmation emails.
    """

    def __init__(self, notifier: Any = None) -> None:
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Entry points

    async def handle_webhook(self, provider: str, raw_body: bytes, signature: Optional[str]) -> WebhookAck:
        """Process a signed gateway webhook.

        Lookup order: provider, signature header present, payload
        parseable, payment found by order id, organizer webhook secret
        configured, signature valid.  Every failure before the
        signature check leaves state untouched.  Once the signature is
        valid the event is acknowledged whatever its effect.
        """
        if provider != "razorpay":
            raise NotFoundError(f"Unsupported payment provider: {provider}")
        if not signature:
            logger.warning("Rejected webhook without signature")
            raise SignatureError("Missing signature")
        try:
            event = json.loads(raw_body)
        except ValueError as e:
            raise ValidationError("Malformed webhook payload") from e
        if not isinstance(event, dict):
            raise ValidationError("Malformed webhook payload")
        order_id = extract_order_id(event)
        if not order_id:
            raise ValidationError("Webhook payload carries no order id")

        context = self._load_context("p.provider_payment_id = ?", order_id)
        if context is None:
            logger.error("No payment found for gateway order %s", order_id)
            raise NotFoundError("Payment record not found")
        organizer = self._load_organizer(context["organizer_id"])
        secret = organizer.get("razorpay_webhook_secret") if organizer else None
        if not secret:
            logger.error("Webhook secret not configured for organizer %s", context["organizer_id"])
            raise ConfigurationError("Webhook secret not configured for organizer")
        if not signatures_match(hmac_sha256_hex(secret, raw_body), signature):
            logger.warning("Rejected webhook for order %s: invalid signature", order_id)
            raise SignatureError("Invalid signature")

        event_type = event.get("event")
        logger.info("Webhook %s for order %s (payment %s)", event_type, order_id, context["payment_id"])
        if event_type in SUCCESS_EVENTS:
            outcome = await self._complete(context, organizer, extract_gateway_payment_id(event))
            result = self._describe(outcome)
        elif event_type in FAILURE_EVENTS:
            outcome = self._settle(context, "failed", extract_gateway_payment_id(event))
            result = "failed" if outcome.performed else "already_processed"
        else:
            logger.info("Ignoring unhandled webhook event %s", event_type)
            result = "ignored"
        return WebhookAck(result=result)

    async def verify_payment(self, order_id: str, payment_id: str, signature: str) -> VerificationResult:
        """Confirm a payment from the client after checkout.

        The signature is HMAC-SHA256 over ``"{order_id}|{payment_id}"``
        with the organizer's gateway key secret.  A payment that is
        already completed is reported as ``already_verified``.
        """
        context = self._load_context("p.provider_payment_id = ?", order_id)
        if context is None:
            raise NotFoundError("Payment record not found")
        organizer = self._load_organizer(context["organizer_id"])
        key_secret = organizer.get("razorpay_key_secret") if organizer else None
        if not key_secret:
            raise ConfigurationError("Payment gateway credentials are not configured")
        expected = hmac_sha256_hex(key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        if not signatures_match(expected, signature):
            logger.warning("Rejected verification for order %s: invalid signature", order_id)
            raise SignatureError("Invalid payment signature")

        outcome = await self._complete(context, organizer, payment_id)
        if outcome.status == "failed":
            raise ConflictError("Payment has already failed")
        if not outcome.performed:
            return VerificationResult(
                status="already_verified",
                message="Payment already verified",
                payment_id=context["payment_id"],
                registration_id=context["registration_id"],
            )
        if not outcome.slots_reserved:
            reason = "the activity is full" if outcome.reason == "capacity_exhausted" else "the registration was canceled"
            return VerificationResult(
                status=outcome.reason,
                message=f"Payment received but {reason}; the organizer will arrange a refund",
                payment_id=context["payment_id"],
                registration_id=context["registration_id"],
            )
        return VerificationResult(
            status="verified",
            message="Payment verified and registration confirmed",
            payment_id=context["payment_id"],
            registration_id=context["registration_id"],
        )

    async def confirm_manual(self, payment_id: int, organizer: dict) -> ManualSettlement:
        """Organizer confirms an offline payment."""
        context = self._manual_context(payment_id, organizer)
        outcome = await self._complete(context, organizer, None)
        if outcome.status == "failed":
            raise ConflictError("Payment has already been rejected")
        return ManualSettlement(payment_id=payment_id, status=outcome.status, changed=outcome.performed)

    async def reject_manual(self, payment_id: int, organizer: dict) -> ManualSettlement:
        """Organizer rejects an offline payment; its tickets come off the registration."""
        context = self._manual_context(payment_id, organizer)
        outcome = self._settle(context, "failed", None)
        if outcome.status == "completed":
            raise ConflictError("Payment has already been confirmed")
        return ManualSettlement(payment_id=payment_id, status=outcome.status, changed=outcome.performed)

    # ------------------------------------------------------------------
    # State machine

    async def _complete(self, context: dict, organizer: Optional[dict], gateway_payment_id: Optional[str]) -> SettlementOutcome:
        outcome = self._settle(context, "completed", gateway_payment_id)
        if outcome.performed and outcome.slots_reserved and organizer:
            user, activity = self._load_user_and_activity(context["user_id"], context["activity_id"])
            await notify_quietly(self.notifier, organizer, user, activity, context["payment_tickets"])
        return outcome

    def _settle(self, context: dict, target: str, gateway_payment_id: Optional[str]) -> SettlementOutcome:
        """Move a pending payment to ``target`` in one transaction.

        Success on a gateway payment reserves the payment's tickets with
        the conditional increment; manual payments reserved theirs at
        booking.  When the activity filled up in the meantime the
        payment still completes, because the money was taken, but its
        tickets come off the registration and the case is logged for a
        refund.  The same happens when the registration was canceled
        before the success arrived.  Failure removes the payment's
        tickets without touching slots; a registration left without
        tickets is canceled.
        """
        now = format_timestamp(utcnow())
        payment_id = context["payment_id"]
        with transaction() as cursor:
            cursor.execute(
                """
                UPDATE payments
                SET status = ?, gateway_payment_id = COALESCE(?, gateway_payment_id), updated_at = ?
                WHERE id = ? AND status = 'pending'
                """,
                (target, gateway_payment_id, now, payment_id),
            )
            if cursor.rowcount != 1:
                row = cursor.execute("SELECT status FROM payments WHERE id = ?", (payment_id,)).fetchone()
                current = row["status"] if row else target
                logger.info("Payment %s already %s; nothing to do", payment_id, current)
                return SettlementOutcome(False, current)

            registration = cursor.execute(
                "SELECT status, ticket_count FROM activity_registrations WHERE id = ?",
                (context["registration_id"],),
            ).fetchone()

            if target == "failed":
                canceled = self._release_tickets(cursor, context, registration, now)
                logger.info(
                    "Payment %s failed; registration %s %s",
                    payment_id,
                    context["registration_id"],
                    "canceled" if canceled else f"reduced by {context['payment_tickets']} tickets",
                )
                return SettlementOutcome(True, "failed")

            if registration["status"] == "canceled":
                logger.error(
                    "Payment %s completed but registration %s is canceled; refund required",
                    payment_id,
                    context["registration_id"],
                )
                return SettlementOutcome(True, "completed", reason="registration_canceled")

            if context["payment_method"] == "razorpay":
                reserved = reserve_slots(cursor, context["activity_id"], context["payment_tickets"])
            else:
                reserved = True
            if reserved:
                cursor.execute(
                    "UPDATE activity_registrations SET updated_at = ? WHERE id = ?",
                    (now, context["registration_id"]),
                )
                logger.info(
                    "Payment %s completed; %s tickets confirmed for registration %s",
                    payment_id,
                    context["payment_tickets"],
                    context["registration_id"],
                )
                return SettlementOutcome(True, "completed", slots_reserved=True)

            self._release_tickets(cursor, context, registration, now)
            logger.error(
                "Payment %s completed but activity %s has no free slots; %s tickets of registration %s need a refund",
                payment_id,
                context["activity_id"],
                context["payment_tickets"],
                context["registration_id"],
            )
            return SettlementOutcome(True, "completed", reason="capacity_exhausted")

    @staticmethod
    def _release_tickets(cursor, context: dict, registration, now: str) -> bool:
        """Take a settled payment's tickets off its registration.

        Tickets held by other payments stay registered; a registration
        left without tickets is canceled.  Returns whether it was.
        """
        remaining = registration["ticket_count"] - context["payment_tickets"]
        if remaining > 0 and registration["status"] != "canceled":
            cursor.execute(
                "UPDATE activity_registrations SET ticket_count = ?, updated_at = ? WHERE id = ?",
                (remaining, now, context["registration_id"]),
            )
            return False
        cursor.execute(
            "UPDATE activity_registrations SET status = 'canceled', updated_at = ? WHERE id = ?",
            (now, context["registration_id"]),
        )
        return True

    @staticmethod
    def _describe(outcome: SettlementOutcome) -> str:
        if not outcome.performed:
            return "already_processed"
        return "completed" if outcome.slots_reserved else outcome.reason

    # ------------------------------------------------------------------
    # Lookups

    @staticmethod
    def _load_context(where: str, value: Any) -> Optional[dict]:
        conn = get_connection()
        try:
            row = conn.execute(
                PAYMENT_CONTEXT_SELECT + f" WHERE {where} AND p.deleted_at IS NULL", (value,)
            ).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    @staticmethod
    def _load_organizer(organizer_id: Optional[int]) -> Optional[dict]:
        if organizer_id is None:
            return None
        conn = get_connection()
        try:
            row = conn.execute("SELECT * FROM organizers WHERE id = ?", (organizer_id,)).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    @staticmethod
    def _load_user_and_activity(user_id: int, activity_id: int) -> tuple:
        conn = get_connection()
        try:
            user = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            activity = conn.execute("SELECT * FROM activities WHERE id = ?", (activity_id,)).fetchone()
            return dict(user), dict(activity)
        finally:
            conn.close()

    def _manual_context(self, payment_id: int, organizer: dict) -> dict:
        context = self._load_context("p.id = ?", payment_id)
        if context is None or context["organizer_id"] != organizer["id"]:
            raise NotFoundError("Payment record not found")
        if context["payment_method"] != "manual":
            raise ValidationError("Only manual payments can be settled by the organizer")
        return context
