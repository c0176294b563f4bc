"""
Business logic for activity registrations.

``RegistrationService.register`` books tickets for a user:

* free activities and activities paid outside the gateway (manual)
  reserve slots immediately with the conditional increment;
* gateway-paid activities only check capacity here; their slots are
  reserved when the payment settles (see ``payment_service``).

All database work of a booking happens in one ``BEGIN IMMEDIATE``
transaction.  The gateway order and the confirmation email are
requested after that transaction commits.  When the gateway order
cannot be created, a compensating transaction removes the pending
payment and reverts the registration.
"""

import logging
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional, Union

from evntly_api.app.core.config import settings
from evntly_api.app.core.db import format_timestamp, get_connection, transaction, utcnow
from evntly_api.app.core.exceptions import (
    CapacityExceededError,
    NotFoundError,
    PaymentGatewayError,
    RegistrationClosedError,
    ValidationError,
)
from evntly_api.app.schemas.registration import (
    ActivityRegistrations,
    ManualPaymentInfo,
    OrganizerRegistrationEntry,
    PaymentRead,
    PaymentRequired,
    RazorpayCheckout,
    RegistrationCompleted,
    RegistrationCreate,
    RegistrationRead,
    UserRead,
)
from evntly_api.app.services.activity_service import (
    ACTIVITY_SELECT,
    build_activity_read,
    has_capacity,
    load_schedules,
    reserve_slots,
)
from evntly_api.app.services.notification_service import notify_quietly
from evntly_api.app.services.status_service import derive_status
from evntly_api.app.services.user_service import UserService

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("upcoming", "live")


def payment_method_for(organizer: Optional[dict]) -> str:
    """``razorpay`` when the organizer has both gateway keys, else ``manual``."""
    if organizer and organizer.get("razorpay_key_id") and organizer.get("razorpay_key_secret"):
        return "razorpay"
    return "manual"


def payment_amount(registration_fee: int, ticket_count: int) -> Decimal:
    """Major-unit amount for ``ticket_count`` tickets of a minor-unit fee."""
    return (Decimal(registration_fee) * ticket_count / 100).quantize(Decimal("0.01"))


def fetch_organizer(cursor: Any, organizer_id: Optional[int]) -> Optional[dict]:
    if organizer_id is None:
        return None
    row = cursor.execute(
        "SELECT * FROM organizers WHERE id = ? AND deleted_at IS NULL", (organizer_id,)
    ).fetchone()
    return dict(row) if row else None


def manual_payment_info(organizer: Optional[dict], payment_id: int) -> ManualPaymentInfo:
    domain = organizer.get("website_domain") if organizer else None
    if not domain:
        return ManualPaymentInfo()
    return ManualPaymentInfo(
        payment_page=f"https://{domain}/pay/{payment_id}",
        qr_code_url=f"https://{domain}/qr/{payment_id}",
    )


class RegistrationService:
    """Books activity tickets.

    Parameters
    ----------
    notifier : object, optional
        Provides ``send_registration_confirmation``; ``None`` disables
        confirmation emails.
    gateway : object, optional
        Provides ``create_order``; required for gateway-paid
        activities.
    """

    def __init__(self, notifier: Any = None, gateway: Any = None) -> None:
        self.notifier = notifier
        self.gateway = gateway

    async def register(
        self, slug: str, data: RegistrationCreate, now: Optional[datetime] = None
    ) -> Union[RegistrationCompleted, PaymentRequired]:
        """Register ``data`` for the activity identified by ``slug``.

        Preconditions are checked in order, each with its own error:
        the activity exists (``NotFoundError``), is active and open
        (``RegistrationClosedError``), a one-time activity has not
        ended (``RegistrationClosedError``) and enough slots are free
        (``CapacityExceededError``).  Registering again for the same
        activity adds tickets to the existing registration.
        """
        count = data.ticket_count
        if count < 1 or count > settings.max_tickets_per_registration:
            raise ValidationError(
                f"ticketCount must be between 1 and {settings.max_tickets_per_registration}"
            )
        now = now or utcnow()

        with transaction() as cursor:
            activity = cursor.execute(
                ACTIVITY_SELECT + " WHERE a.slug = ? AND a.deleted_at IS NULL", (slug,)
            ).fetchone()
            if not activity:
                raise NotFoundError("Activity not found")
            if not activity["is_active"] or not activity["is_registration_open"]:
                raise RegistrationClosedError("Registration is not open for this activity")
            if activity["type"] == "one-time" and derive_status(activity, now=now) not in OPEN_STATUSES:
                raise RegistrationClosedError("Registration closed for this activity")

            organizer = fetch_organizer(cursor, activity["owner_id"])
            fee = activity["registration_fee"] or 0
            method = payment_method_for(organizer)
            deferred = fee > 0 and method == "razorpay"

            if deferred:
                if not has_capacity(activity, count):
                    raise CapacityExceededError("Not enough slots available")
            elif not reserve_slots(cursor, activity["id"], count):
                raise CapacityExceededError("Not enough slots available")

            user = UserService.find_or_create(cursor, data.first_name, data.last_name, data.email, data.phone)

            stamp = format_timestamp(now)
            existing = cursor.execute(
                """
                SELECT id FROM activity_registrations
                WHERE activity_id = ? AND user_id = ? AND status != 'canceled' AND deleted_at IS NULL
                ORDER BY id LIMIT 1
                """,
                (activity["id"], user["id"]),
            ).fetchone()
            if existing:
                created = False
                registration_id = existing["id"]
                cursor.execute(
                    "UPDATE activity_registrations SET ticket_count = ticket_count + ?, updated_at = ? WHERE id = ?",
                    (count, stamp, registration_id),
                )
            else:
                created = True
                cursor.execute(
                    """
                    INSERT INTO activity_registrations (activity_id, user_id, status, ticket_count, registered_at, updated_at)
                    VALUES (?, ?, 'registered', ?, ?, ?)
                    """,
                    (activity["id"], user["id"], count, stamp, stamp),
                )
                registration_id = cursor.lastrowid
            registration = dict(
                cursor.execute("SELECT * FROM activity_registrations WHERE id = ?", (registration_id,)).fetchone()
            )

            payment = None
            if fee > 0:
                cursor.execute(
                    """
                    INSERT INTO payments (registration_id, amount, currency, ticket_count, status, payment_method, created_at, updated_at)
                    VALUES (?, ?, ?, ?, 'pending', ?, ?, ?)
                    """,
                    (registration_id, str(payment_amount(fee, count)), settings.currency, count, method, stamp, stamp),
                )
                payment = dict(cursor.execute("SELECT * FROM payments WHERE id = ?", (cursor.lastrowid,)).fetchone())

            activity = cursor.execute(ACTIVITY_SELECT + " WHERE a.id = ?", (activity["id"],)).fetchone()
            schedules = load_schedules(cursor, [activity["id"]])[activity["id"]]

        logger.info(
            "Registration %s for activity %s (user %s, +%s tickets, %s)",
            registration_id,
            activity["id"],
            user["id"],
            count,
            "free" if payment is None else method,
        )
        activity_read = build_activity_read(activity, schedules, now)

        if payment is None:
            if organizer:
                await notify_quietly(self.notifier, organizer, user, dict(activity), count)
            return RegistrationCompleted(
                user=UserRead(**user),
                registration=RegistrationRead(**registration),
                activity=activity_read,
            )

        if method == "razorpay":
            payment_info = await self._open_gateway_order(organizer, activity, user, registration, payment, created)
            payment["provider_payment_id"] = payment_info.order_id
        else:
            payment_info = manual_payment_info(organizer, payment["id"])

        return PaymentRequired(
            user=UserRead(**user),
            registration=RegistrationRead(**registration),
            payment=PaymentRead(**payment),
            payment_info=payment_info,
        )

    async def _open_gateway_order(
        self, organizer: dict, activity: Any, user: dict, registration: dict, payment: dict, created: bool
    ) -> RazorpayCheckout:
        amount_minor = activity["registration_fee"] * payment["ticket_count"]
        try:
            if self.gateway is None:
                raise PaymentGatewayError("Payment gateway is not available")
            order = await self.gateway.create_order(
                key_id=organizer["razorpay_key_id"],
                key_secret=organizer["razorpay_key_secret"],
                amount=amount_minor,
                currency=payment["currency"],
                receipt=f"payment_{payment['id']}",
                notes={
                    "activity_id": activity["id"],
                    "registration_id": registration["id"],
                    "user_id": user["id"],
                    "payment_id": payment["id"],
                    "ticket_count": payment["ticket_count"],
                },
            )
            order_id = order["id"]
        except Exception as e:
            try:
                self._revert_booking(payment, registration["id"], created)
            except sqlite3.Error:
                logger.exception(
                    "Could not revert registration %s after gateway failure for payment %s",
                    registration["id"],
                    payment["id"],
                )
            if isinstance(e, PaymentGatewayError):
                raise
            raise PaymentGatewayError(f"Payment gateway error: {e}") from e

        with transaction() as cursor:
            cursor.execute(
                "UPDATE payments SET provider_payment_id = ?, updated_at = ? WHERE id = ?",
                (order_id, format_timestamp(utcnow()), payment["id"]),
            )
        logger.info("Payment %s awaiting gateway order %s", payment["id"], order_id)
        return RazorpayCheckout(
            key_id=organizer["razorpay_key_id"],
            order_id=order_id,
            amount=amount_minor,
            currency=payment["currency"],
        )

    @staticmethod
    def _revert_booking(payment: dict, registration_id: int, created: bool) -> None:
        """Undo a gateway booking whose order could not be created.

        A registration created by this booking is removed unless another
        booking has attached a payment to it since; otherwise only this
        booking's tickets come off.
        """
        with transaction() as cursor:
            cursor.execute("DELETE FROM payments WHERE id = ?", (payment["id"],))
            others = cursor.execute(
                "SELECT COUNT(*) FROM payments WHERE registration_id = ?", (registration_id,)
            ).fetchone()[0]
            if created and not others:
                cursor.execute("DELETE FROM activity_registrations WHERE id = ?", (registration_id,))
            else:
                cursor.execute(
                    "UPDATE activity_registrations SET ticket_count = ticket_count - ?, updated_at = ? WHERE id = ?",
                    (payment["ticket_count"], format_timestamp(utcnow()), registration_id),
                )
        logger.warning(
            "Reverted registration %s after gateway failure for payment %s", registration_id, payment["id"]
        )

    @classmethod
    async def list_for_organizer(cls, organizer_id: int) -> List[ActivityRegistrations]:
        """Registrations of all activities of an organizer, grouped by activity."""
        conn = get_connection()
        try:
            rows = conn.execute(
                """
                SELECT a.id AS activity_id, a.slug, a.name,
                       r.id AS registration_id, r.status, r.ticket_count,
                       u.first_name, u.last_name, u.email, u.phone
                FROM activities a
                LEFT JOIN clubs c ON c.id = a.club_id
                LEFT JOIN activity_registrations r ON r.activity_id = a.id AND r.deleted_at IS NULL
                LEFT JOIN users u ON u.id = r.user_id
                WHERE COALESCE(a.organizer_id, c.organizer_id) = ? AND a.deleted_at IS NULL
                ORDER BY a.created_at DESC, a.id DESC, r.id
                """,
                (organizer_id,),
            ).fetchall()
        finally:
            conn.close()

        grouped: dict = {}
        for row in rows:
            group = grouped.get(row["activity_id"])
            if group is None:
                group = grouped[row["activity_id"]] = ActivityRegistrations(
                    activity_slug=row["slug"], activity_name=row["name"], registrations=[]
                )
            if row["registration_id"] is None:
                continue
            group.registrations.append(
                OrganizerRegistrationEntry(
                    registration_id=row["registration_id"],
                    status=row["status"],
                    ticket_count=row["ticket_count"],
                    first_name=row["first_name"],
                    last_name=row["last_name"],
                    email=row["email"],
                    phone=row["phone"],
                )
            )
        return list(grouped.values())
