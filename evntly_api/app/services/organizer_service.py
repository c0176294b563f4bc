"""
Business logic for organizers: onboarding, tokens and credentials.
"""

import logging

from evntly_api.app.core.config import settings
from evntly_api.app.core.db import format_timestamp, get_connection, transaction, utcnow
from evntly_api.app.core.exceptions import AuthenticationError, ConflictError, ValidationError
from evntly_api.app.core.security import create_access_token, generate_secret_key, normalize_domain
from evntly_api.app.schemas.organizer import (
    OrganizerCreate,
    OrganizerRead,
    OrganizerRegistered,
    OrganizerSettingsUpdate,
    TokenResponse,
)
from evntly_api.app.services.user_service import UserService

logger = logging.getLogger(__name__)


def organizer_read(organizer: dict) -> OrganizerRead:
    """Public view of an organizer row; secrets are reduced to flags."""
    return OrganizerRead(
        id=organizer["id"],
        organization_name=organizer["organization_name"],
        organizer_email=organizer["organizer_email"],
        website_domain=organizer.get("website_domain"),
        system_email=organizer.get("system_email"),
        payment_gateway_configured=bool(organizer.get("razorpay_key_id") and organizer.get("razorpay_key_secret")),
        webhook_secret_configured=bool(organizer.get("razorpay_webhook_secret")),
        email_configured=bool(organizer.get("resend_api_key")),
    )


class OrganizerService:
    """Organizer onboarding and self-service settings."""

    @classmethod
    async def register_organizer(cls, data: OrganizerCreate) -> OrganizerRegistered:
        """Register an organizer for a website domain.

        Domains and organizer emails are unique across organizers.  The
        owner user is looked up by email and created when missing.  The
        generated secret key is returned only in this response.
        """
        domain = normalize_domain(data.website_domain)
        if not domain:
            raise ValidationError("Invalid website domain")

        secret_key = generate_secret_key()
        with transaction() as cursor:
            if cursor.execute("SELECT 1 FROM organizers WHERE website_domain = ?", (domain,)).fetchone():
                raise ConflictError("This website domain is already registered to another organizer")
            if cursor.execute(
                "SELECT 1 FROM organizers WHERE organizer_email = ?", (data.organizer_email,)
            ).fetchone():
                raise ConflictError("An organizer with this email already exists")

            user = UserService.find_or_create(
                cursor, data.first_name, data.last_name, data.organizer_email, data.phone
            )
            cursor.execute(
                """
                INSERT INTO organizers (user_id, secret_key, organization_name, organizer_email, website_domain)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user["id"], secret_key, data.organization_name, data.organizer_email, domain),
            )
            row = cursor.execute("SELECT * FROM organizers WHERE id = ?", (cursor.lastrowid,)).fetchone()
        logger.info("Registered organizer %s for domain %s", row["id"], domain)
        return OrganizerRegistered(organizer=organizer_read(dict(row)), secret_key=secret_key)

    @classmethod
    async def issue_token(cls, secret_key: str) -> TokenResponse:
        """Exchange an organizer secret key for a bearer token."""
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT id FROM organizers WHERE secret_key = ? AND is_active = 1 AND deleted_at IS NULL",
                (secret_key,),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            raise AuthenticationError("Invalid secret key")
        expires_in = settings.access_token_expire_minutes * 60
        token = create_access_token({"organizer_id": row["id"]}, expires_in)
        return TokenResponse(access_token=token, expires_in=expires_in)

    @classmethod
    async def update_settings(cls, organizer: dict, data: OrganizerSettingsUpdate) -> OrganizerRead:
        """Store gateway and mail credentials; empty strings clear a value."""
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            return organizer_read(organizer)
        columns = [f"{field} = ?" for field in changes]
        params = [value or None for value in changes.values()]
        with transaction() as cursor:
            cursor.execute(
                f"UPDATE organizers SET {', '.join(columns)}, updated_at = ? WHERE id = ?",
                (*params, format_timestamp(utcnow()), organizer["id"]),
            )
            row = cursor.execute("SELECT * FROM organizers WHERE id = ?", (organizer["id"],)).fetchone()
        logger.info("Organizer %s updated settings: %s", organizer["id"], ", ".join(sorted(changes)))
        return organizer_read(dict(row))
