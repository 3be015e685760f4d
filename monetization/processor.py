"""
Thin gateway over the Stripe SDK.

Everything the checkout orchestrator needs from the processor goes through
StripeGateway so that SDK errors are translated into the monetization
exceptions in one place.
"""

from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings
import stripe
import logging

from .exceptions import CheckoutInitiationFailed, ConfigurationError, ProcessorUnavailable

logger = logging.getLogger('grandstand')

# Normalized processor states
PAID = 'paid'
OPEN = 'open'
EXPIRED = 'expired'
FAILED = 'failed'

SUBSCRIPTION_PREFIX = 'sub_'


@dataclass(frozen=True)
class ProcessorCheckout:
    reference: str
    redirect_url: Optional[str] = None
    confirmation_secret: Optional[str] = None
    customer_id: Optional[str] = None


@dataclass(frozen=True)
class ProcessorState:
    reference: str
    state: str
    metadata: dict = field(default_factory=dict)
    amount_cents: Optional[int] = None


def is_configured():
    return bool(getattr(settings, 'STRIPE_SECRET_KEY', ''))


def _metadata(obj):
    metadata = getattr(obj, 'metadata', None)
    return dict(metadata) if isinstance(metadata, dict) else {}


def _session_state(session):
    if session.status == 'expired':
        return EXPIRED
    if session.status == 'complete' and session.payment_status in ('paid', 'no_payment_required'):
        return PAID
    # complete but unpaid means an asynchronous payment method is still settling
    return OPEN


def _subscription_state(subscription):
    if subscription.status in ('active', 'trialing'):
        return PAID
    if subscription.status == 'incomplete_expired':
        return EXPIRED
    if subscription.status in ('canceled', 'unpaid'):
        return FAILED
    return OPEN


class StripeGateway:
    """
    Stripe checkout sessions, subscriptions and customers.
    """

    def __init__(self, api_key=None, currency=None):
        self.api_key = api_key if api_key is not None else getattr(settings, 'STRIPE_SECRET_KEY', '')
        self.currency = currency or settings.MONETIZATION.get('CURRENCY', 'usd')

    def _require_configured(self):
        if not self.api_key:
            logger.error("Payment processor is not configured (STRIPE_SECRET_KEY missing)")
            raise ConfigurationError()

    def create_payment_session(self, amount_cents, description, metadata, success_url, cancel_url,
                               customer_email=None):
        """
        Hosted checkout for a one-time payment (tip or sponsorship).
        """
        self._require_configured()
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode='payment',
                line_items=[{
                    'price_data': {
                        'currency': self.currency,
                        'product_data': {'name': description},
                        'unit_amount': amount_cents,
                    },
                    'quantity': 1,
                }],
                payment_intent_data={'metadata': metadata},
                metadata=metadata,
                customer_email=customer_email or None,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment session: {str(e)}")
            raise CheckoutInitiationFailed()

        logger.info(f"Created checkout session {session.id} ({metadata.get('kind')})")
        return ProcessorCheckout(reference=session.id, redirect_url=getattr(session, 'url', None))

    def create_subscription_session(self, amount_cents, description, metadata, success_url, cancel_url,
                                    price_ref='', customer_email=None, interval='month'):
        """
        Hosted checkout for a recurring subscription. Uses the tier's processor
        price when one is configured, otherwise inline monthly price data.
        """
        self._require_configured()
        if price_ref:
            line_item = {'price': price_ref, 'quantity': 1}
        else:
            line_item = {
                'price_data': {
                    'currency': self.currency,
                    'product_data': {'name': description},
                    'unit_amount': amount_cents,
                    'recurring': {'interval': interval},
                },
                'quantity': 1,
            }
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode='subscription',
                line_items=[line_item],
                subscription_data={'metadata': metadata},
                metadata=metadata,
                customer_email=customer_email or None,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating subscription session: {str(e)}")
            raise CheckoutInitiationFailed()

        logger.info(f"Created subscription checkout session {session.id}")
        return ProcessorCheckout(reference=session.id, redirect_url=getattr(session, 'url', None))

    def create_subscription(self, user, price_ref, metadata):
        """
        Direct subscription confirmed in the client with the returned secret.
        Creates the payer's customer record first when they have none.
        """
        self._require_configured()
        if not price_ref:
            logger.error(f"Inline subscription requested without a processor price ({metadata.get('tier_name')})")
            raise CheckoutInitiationFailed("This tier is not available for inline checkout.")

        try:
            customer_id = user.stripe_customer_id
            if not customer_id:
                customer = stripe.Customer.create(
                    api_key=self.api_key,
                    email=user.email,
                    name=user.full_name or user.username,
                    metadata={'user_id': str(user.pk)},
                )
                customer_id = customer.id
                logger.info(f"Created Stripe customer {customer_id} for user {user.pk}")

            subscription = stripe.Subscription.create(
                api_key=self.api_key,
                customer=customer_id,
                items=[{'price': price_ref}],
                payment_behavior='default_incomplete',
                payment_settings={'save_default_payment_method': 'on_subscription'},
                expand=['latest_invoice.payment_intent'],
                metadata=metadata,
            )
            client_secret = subscription.latest_invoice.payment_intent.client_secret
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating subscription: {str(e)}")
            raise CheckoutInitiationFailed()
        except AttributeError:
            logger.error("Stripe subscription came back without a payment intent")
            raise CheckoutInitiationFailed()

        logger.info(f"Created subscription {subscription.id} for customer {customer_id}")
        return ProcessorCheckout(
            reference=subscription.id,
            confirmation_secret=client_secret,
            customer_id=customer_id,
        )

    def retrieve(self, reference):
        """
        Current state of a checkout session or subscription, normalized to
        paid / open / expired / failed.
        """
        self._require_configured()
        try:
            if reference.startswith(SUBSCRIPTION_PREFIX):
                subscription = stripe.Subscription.retrieve(reference, api_key=self.api_key)
                return ProcessorState(
                    reference=reference,
                    state=_subscription_state(subscription),
                    metadata=_metadata(subscription),
                )

            session = stripe.checkout.Session.retrieve(reference, api_key=self.api_key)
            amount_total = getattr(session, 'amount_total', None)
            return ProcessorState(
                reference=reference,
                state=_session_state(session),
                metadata=_metadata(session),
                amount_cents=amount_total if isinstance(amount_total, int) else None,
            )
        except stripe.InvalidRequestError as e:
            # Unknown reference: nothing identifies a charge
            logger.warning(f"Stripe does not know reference {reference}: {str(e)}")
            return ProcessorState(reference=reference, state=FAILED)
        except stripe.StripeError as e:
            logger.error(f"Stripe error retrieving {reference}: {str(e)}")
            raise ProcessorUnavailable()
