"""
Dependency providers for API v1.

Outbound clients are created per request and handed to the services,
so tests can swap them through ``app.dependency_overrides`` without
touching module globals.
"""

from fastapi import Depends

from evntly_api.app.services.gateway import RazorpayGateway
from evntly_api.app.services.notification_service import ResendNotifier
from evntly_api.app.services.payment_service import PaymentService
from evntly_api.app.services.registration_service import RegistrationService


def get_gateway() -> RazorpayGateway:
    return RazorpayGateway()


def get_notifier() -> ResendNotifier:
    return ResendNotifier()


def get_registration_service(
    notifier: ResendNotifier = Depends(get_notifier),
    gateway: RazorpayGateway = Depends(get_gateway),
) -> RegistrationService:
    return RegistrationService(notifier=notifier, gateway=gateway)


def get_payment_service(notifier: ResendNotifier = Depends(get_notifier)) -> PaymentService:
    return PaymentService(notifier=notifier)
