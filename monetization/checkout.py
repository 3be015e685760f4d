"""
Checkout orchestration for tips, subscriptions and sponsorships.

initiate_charge validates locally, asks the processor for a hosted checkout
(or an inline subscription) and only then persists a pending charge.
finalize_charge observes the processor's state for a reference and applies
the outcome exactly once: status, revenue split and fan spend are written in
a single transaction under a row lock on the charge.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode
import uuid

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied
import logging

from fans.services import record_spend
from grandstand.utils import format_cents
from .exceptions import ChargeFinalizationAmbiguous, InvalidCharge
from .models import MonetizableCharge
from .payloads import SponsorshipPayload, SubscriptionPayload, TipPayload, to_metadata
from .processor import EXPIRED, FAILED, PAID, StripeGateway
from .revenue import split

logger = logging.getLogger('grandstand')

DEFAULT_MIN_TIP_CENTS = 100


@dataclass(frozen=True)
class ChargeHandle:
    charge_id: str
    correlation_id: str
    kind: str
    amount_cents: int
    external_reference: str
    redirect_url: Optional[str] = None
    confirmation_secret: Optional[str] = None
    return_url: Optional[str] = None

    def as_dict(self):
        data = {
            'charge_id': self.charge_id,
            'correlation_id': self.correlation_id,
            'kind': self.kind,
            'amount_cents': self.amount_cents,
            'external_reference': self.external_reference,
        }
        if self.redirect_url:
            data['redirect_url'] = self.redirect_url
        else:
            data['confirmation_secret'] = self.confirmation_secret
            data['return_url'] = self.return_url
        return data


@dataclass(frozen=True)
class ChargeResult:
    charge_id: str
    correlation_id: str
    kind: str
    status: str
    amount_cents: int
    payee_id: int
    creator_cents: Optional[int] = None
    platform_cents: Optional[int] = None
    already_finalized: bool = False
    fan_status: Optional[dict] = None

    def as_dict(self):
        return {
            'charge_id': self.charge_id,
            'correlation_id': self.correlation_id,
            'kind': self.kind,
            'status': self.status,
            'amount_cents': self.amount_cents,
            'payee_id': self.payee_id,
            'creator_cents': self.creator_cents,
            'platform_cents': self.platform_cents,
            'already_finalized': self.already_finalized,
            'fan_status': self.fan_status,
        }


def _result(charge, already_finalized=False, fan_status=None):
    return ChargeResult(
        charge_id=str(charge.pk),
        correlation_id=str(charge.correlation_id),
        kind=charge.kind,
        status=charge.status,
        amount_cents=charge.amount_cents,
        payee_id=charge.payee_id,
        creator_cents=charge.creator_cents,
        platform_cents=charge.platform_cents,
        already_finalized=already_finalized,
        fan_status=fan_status.as_dict() if fan_status is not None else None,
    )


def min_tip_cents():
    return settings.MONETIZATION.get('MIN_TIP_CENTS', DEFAULT_MIN_TIP_CENTS)


def subscription_mode():
    return settings.MONETIZATION.get('SUBSCRIPTION_MODE', 'checkout')


def continuation_urls(kind, payee, correlation_id, amount_cents=None, tier=None, package=None,
                      hosted=True):
    """
    Success and cancel URLs carrying enough context for the frontend to
    render the outcome page before the charge is finalized.
    """
    params = {'kind': kind, 'creator': payee.username}
    if tier is not None:
        params['tier'] = tier.name
    if package is not None:
        params['package'] = package.name
    if amount_cents is not None and tier is None:
        params['amount'] = format_cents(amount_cents)
    params['correlation'] = str(correlation_id)

    base = settings.FRONTEND_URL.rstrip('/')
    query = urlencode(params)
    success_url = f"{base}/payment/success?{query}"
    if hosted:
        # Stripe substitutes the placeholder, so it must stay unescaped
        success_url += "&session_id={CHECKOUT_SESSION_ID}"
    cancel_url = f"{base}/payment/cancel?{query}"
    return success_url, cancel_url


def _validate(kind, payer, payee, amount_cents, tier, package):
    """
    Local validation. Returns the amount to charge.
    """
    if kind not in dict(MonetizableCharge.KINDS):
        raise InvalidCharge({'kind': f"Unsupported charge kind '{kind}'."})
    if payer.pk == payee.pk:
        raise InvalidCharge("You cannot support yourself.")
    if not payee.is_creator:
        raise InvalidCharge({'creator_id': "Only racers can receive support."})
    if amount_cents is not None and (isinstance(amount_cents, bool) or not isinstance(amount_cents, int)):
        raise InvalidCharge({'amount_cents': "Amount must be a whole number of cents."})

    if kind == 'tip':
        if amount_cents is None:
            raise InvalidCharge({'amount_cents': "An amount is required for tips."})
        if amount_cents < min_tip_cents():
            raise InvalidCharge({
                'amount_cents': f"Minimum tip is ${format_cents(min_tip_cents())}."
            })
        return amount_cents

    if kind == 'subscription':
        if tier is None:
            raise InvalidCharge({'tier_id': "A subscription tier is required."})
        if tier.creator_id != payee.pk or not tier.active:
            raise InvalidCharge({'tier_id': "This tier is not available."})
        if amount_cents is not None and amount_cents != tier.price_cents:
            raise InvalidCharge({
                'amount_cents': f"Subscription price for {tier.name} is ${format_cents(tier.price_cents)}."
            })
        return tier.price_cents

    if package is None:
        raise InvalidCharge({'package_id': "A sponsorship package is required."})
    if package.creator_id != payee.pk or not package.active:
        raise InvalidCharge({'package_id': "This package is not available."})
    if amount_cents is None:
        return package.price_cents
    if amount_cents < package.price_cents:
        raise InvalidCharge({
            'amount_cents': f"Minimum for {package.name} is ${format_cents(package.price_cents)}."
        })
    return amount_cents


def _build_payload(kind, payee, tier, package, message):
    creator_name = payee.full_name
    if kind == 'tip':
        return TipPayload(creator_name=creator_name, message=message or '')
    if kind == 'subscription':
        return SubscriptionPayload(creator_name=creator_name, tier_id=tier.pk, tier_name=tier.name)
    return SponsorshipPayload(
        creator_name=creator_name,
        package_id=package.pk,
        package_name=package.name,
        car_placement=package.car_placement,
        duration_races=package.duration_races,
    )


def initiate_charge(kind, payer, payee, amount_cents=None, tier=None, package=None, message='',
                    gateway=None):
    """
    Start a checkout and persist the pending charge.

    Raises InvalidCharge before any network call, ConfigurationError when the
    processor is not configured and CheckoutInitiationFailed when the
    processor call fails. Nothing is persisted in the failure cases.
    """
    amount_cents = _validate(kind, payer, payee, amount_cents, tier, package)
    payload = _build_payload(kind, payee, tier, package, message)
    gateway = gateway or StripeGateway()

    correlation_id = uuid.uuid4()
    metadata = to_metadata(
        payload,
        correlation_id=correlation_id,
        payer_id=payer.pk,
        payee_id=payee.pk,
        amount_cents=amount_cents,
    )
    url_context = {
        'amount_cents': amount_cents,
        'tier': tier,
        'package': package,
    }

    if kind == 'subscription':
        checkout = None
        if subscription_mode() != 'inline':
            success_url, cancel_url = continuation_urls(kind, payee, correlation_id, **url_context)
            checkout = gateway.create_subscription_session(
                amount_cents,
                payload.description,
                metadata,
                success_url,
                cancel_url,
                price_ref=tier.external_price_ref,
                customer_email=payer.email,
                interval=payload.interval,
            )
            if not checkout.redirect_url:
                logger.warning(
                    f"Checkout session {checkout.reference} has no URL, "
                    f"falling back to inline subscription for {correlation_id}"
                )
                checkout = None
        if checkout is None:
            checkout = gateway.create_subscription(payer, tier.external_price_ref, metadata)
    else:
        success_url, cancel_url = continuation_urls(kind, payee, correlation_id, **url_context)
        checkout = gateway.create_payment_session(
            amount_cents,
            payload.description,
            metadata,
            success_url,
            cancel_url,
            customer_email=payer.email,
        )

    with transaction.atomic():
        charge = MonetizableCharge.objects.create(
            payer=payer,
            payee=payee,
            amount_cents=amount_cents,
            kind=kind,
            correlation_id=correlation_id,
            external_reference=checkout.reference,
            payload=payload.to_dict(),
            tier=tier,
            package=package,
        )
        if checkout.customer_id and checkout.customer_id != payer.stripe_customer_id:
            payer.stripe_customer_id = checkout.customer_id
            payer.save(update_fields=['stripe_customer_id'])

    logger.info(
        f"Initiated {kind} charge {charge.pk} from {payer.pk} to {payee.pk} "
        f"for {amount_cents} cents (correlation {correlation_id})"
    )

    return_url = None
    if not checkout.redirect_url:
        return_url, _ = continuation_urls(kind, payee, correlation_id, hosted=False, **url_context)

    return ChargeHandle(
        charge_id=str(charge.pk),
        correlation_id=str(correlation_id),
        kind=kind,
        amount_cents=amount_cents,
        external_reference=checkout.reference,
        redirect_url=checkout.redirect_url,
        confirmation_secret=checkout.confirmation_secret,
        return_url=return_url,
    )


def _find_charge(external_reference, metadata):
    charge = MonetizableCharge.objects.filter(external_reference=external_reference).first()
    if charge is not None:
        return charge

    correlation = metadata.get('correlation_id')
    if not correlation:
        return None
    try:
        correlation = uuid.UUID(correlation)
    except ValueError:
        logger.warning(f"Malformed correlation id in processor metadata for {external_reference}")
        return None
    return MonetizableCharge.objects.filter(correlation_id=correlation).first()


def _schedule_earnings_refresh(creator_id):
    from .tasks import refresh_creator_earnings

    try:
        refresh_creator_earnings.delay(creator_id)
    except Exception as e:
        logger.warning(f"Could not schedule earnings refresh for creator {creator_id}: {str(e)}")


def _check_payer(charge, payer):
    if payer is not None and charge.payer_id != payer.pk:
        logger.warning(f"User {payer.pk} tried to finalize charge {charge.pk} of another payer")
        raise PermissionDenied("This payment belongs to another account.")


def finalize_charge(external_reference, gateway=None, payer=None):
    """
    Apply the processor's outcome for a checkout reference. Safe to call any
    number of times: side effects of success are applied once.

    When payer is given, a charge that resolves to another payer is refused
    before anything is written.
    """
    if not external_reference:
        raise ChargeFinalizationAmbiguous()

    charge = MonetizableCharge.objects.filter(external_reference=external_reference).first()
    if charge is not None:
        _check_payer(charge, payer)
        if charge.status == 'succeeded':
            logger.info(f"Charge {charge.pk} already finalized")
            return _result(charge, already_finalized=True)

    gateway = gateway or StripeGateway()
    processor_state = gateway.retrieve(external_reference)

    if charge is None:
        charge = _find_charge(external_reference, processor_state.metadata)
    if charge is None:
        logger.error(
            f"Cannot finalize {external_reference}: no local charge and no correlation id "
            f"in processor metadata"
        )
        raise ChargeFinalizationAmbiguous()
    _check_payer(charge, payer)

    if processor_state.amount_cents is not None and processor_state.amount_cents != charge.amount_cents:
        logger.error(
            f"Amount mismatch finalizing charge {charge.pk}: processor reports "
            f"{processor_state.amount_cents}, charge is {charge.amount_cents}"
        )
        raise ChargeFinalizationAmbiguous()

    fan_status = None
    with transaction.atomic():
        charge = MonetizableCharge.objects.select_for_update().select_related('payee').get(pk=charge.pk)

        if charge.status == 'succeeded':
            logger.info(f"Charge {charge.pk} was finalized concurrently")
            return _result(charge, already_finalized=True)

        update_fields = []
        if charge.external_reference is None:
            charge.external_reference = external_reference
            update_fields.append('external_reference')

        if processor_state.state == PAID:
            revenue = split(charge.amount_cents)
            charge.status = 'succeeded'
            charge.creator_cents = revenue.creator_cents
            charge.platform_cents = revenue.platform_cents
            charge.finalized_at = timezone.now()
            charge.save(update_fields=update_fields + [
                'status', 'creator_cents', 'platform_cents', 'finalized_at',
            ])
            if charge.payer_id == charge.payee_id:
                logger.warning(f"Charge {charge.pk} has the same payer and payee, no fan spend recorded")
            else:
                fan_status = record_spend(
                    charge.payer_id, charge.payee, charge.amount_cents, check_role=False
                )

            creator_id = charge.payee_id
            transaction.on_commit(lambda: _schedule_earnings_refresh(creator_id))
            logger.info(
                f"Charge {charge.pk} succeeded: {revenue.creator_cents} cents to creator "
                f"{creator_id}, {revenue.platform_cents} cents platform"
            )
        elif processor_state.state in (EXPIRED, FAILED) and charge.status == 'pending':
            charge.status = 'canceled' if processor_state.state == EXPIRED else 'failed'
            charge.finalized_at = timezone.now()
            charge.save(update_fields=update_fields + ['status', 'finalized_at'])
            logger.info(f"Charge {charge.pk} {charge.status} ({processor_state.state} at processor)")
        elif update_fields:
            charge.save(update_fields=update_fields)

    return _result(charge, fan_status=fan_status)


def cancel_charge(correlation_id):
    """
    Mark a pending charge as canceled (the payer left the hosted checkout).
    Terminal charges are left untouched.
    """
    with transaction.atomic():
        charge = MonetizableCharge.objects.select_for_update().get(correlation_id=correlation_id)
        if charge.status == 'pending':
            charge.status = 'canceled'
            charge.finalized_at = timezone.now()
            charge.save(update_fields=['status', 'finalized_at'])
            logger.info(f"Charge {charge.pk} canceled by payer")
    return _result(charge)
