from django.core.cache import cache
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient, APITestCase
from rest_framework import status
from unittest.mock import MagicMock, patch
import stripe
import uuid

from fans.models import FanRelationship
from fans.services import follow, unfollow
from users.models import CreatorProfile, User
from .checkout import cancel_charge, continuation_urls, finalize_charge, initiate_charge
from .exceptions import ChargeFinalizationAmbiguous, CheckoutInitiationFailed, ConfigurationError, InvalidCharge
from .models import MonetizableCharge, SponsorshipPackage, SubscriptionTier
from .payloads import TipPayload, payload_from_dict, to_metadata
from .revenue import split
from .tasks import refresh_creator_earnings

INLINE_MONETIZATION = {
    'CURRENCY': 'usd',
    'MIN_TIP_CENTS': 100,
    'SUBSCRIPTION_MODE': 'inline',
}


def hosted_session(reference='cs_test_123', url='https://checkout.stripe.com/c/pay/cs_test_123'):
    return MagicMock(id=reference, url=url)


def paid_session(charge, status='complete', payment_status='paid'):
    return MagicMock(
        id=charge.external_reference,
        status=status,
        payment_status=payment_status,
        amount_total=charge.amount_cents,
        metadata={'correlation_id': str(charge.correlation_id)},
    )


class RevenueSplitTests(SimpleTestCase):
    def test_split_takes_twenty_percent(self):
        revenue = split(2500)
        self.assertEqual(revenue.creator_cents, 2000)
        self.assertEqual(revenue.platform_cents, 500)

    def test_split_rounds_platform_share_down(self):
        revenue = split(99)
        self.assertEqual(revenue.platform_cents, 19)
        self.assertEqual(revenue.creator_cents, 80)

    def test_split_parts_always_add_up(self):
        for gross in list(range(0, 1000)) + [123457, 10 ** 9 + 7]:
            revenue = split(gross)
            self.assertEqual(revenue.creator_cents + revenue.platform_cents, gross)

    def test_split_rejects_negative_and_non_integer_amounts(self):
        for value in (-1, 12.5, '100', True, None):
            with self.assertRaises(ValueError):
                split(value)


class PayloadTests(SimpleTestCase):
    def test_metadata_is_flattened_to_strings(self):
        payload = TipPayload(creator_name='Speedy Racer', message='Go!')
        metadata = to_metadata(payload, payer_id=7, amount_cents=500, note=None)

        self.assertEqual(metadata['kind'], 'tip')
        self.assertEqual(metadata['payer_id'], '7')
        self.assertEqual(metadata['amount_cents'], '500')
        self.assertEqual(metadata['creator_name'], 'Speedy Racer')
        self.assertNotIn('note', metadata)

    def test_payload_rebuilds_from_stored_dict(self):
        payload = TipPayload(creator_name='Speedy Racer', message='Go!')
        self.assertEqual(payload_from_dict('tip', payload.to_dict()), payload)
        with self.assertRaises(ValueError):
            payload_from_dict('donation', {})


class MonetizationTestCase(APITestCase):
    def setUp(self):
        cache.clear()
        self.fan = User.objects.create_user(
            username='fan1',
            email='fan1@example.com',
            password='password123'
        )
        self.racer = User.objects.create_user(
            username='racer1',
            email='racer1@example.com',
            password='password123',
            first_name='Speedy',
            last_name='Racer',
            user_type='racer'
        )
        self.tier = SubscriptionTier.objects.create(
            creator=self.racer,
            name='Pit Crew',
            price_cents=999,
            benefits=['Exclusive posts', 'Supporter badge'],
            external_price_ref='price_pitcrew'
        )
        self.package = SponsorshipPackage.objects.create(
            creator=self.racer,
            name='Hood Decal',
            price_cents=25000,
            car_placement='Hood',
            duration_races=5
        )

        self.client = APIClient()
        self.client.force_authenticate(user=self.fan)

        self.checkout_url = reverse('monetization:checkout-list')
        self.finalize_url = reverse('monetization:checkout-finalize')
        self.cancel_url = reverse('monetization:checkout-cancel')

    def create_charge(self, amount_cents=2500, kind='tip', reference='cs_test_existing', **kwargs):
        return MonetizableCharge.objects.create(
            payer=kwargs.pop('payer', self.fan),
            payee=self.racer,
            amount_cents=amount_cents,
            kind=kind,
            external_reference=reference,
            payload=TipPayload(creator_name='Speedy Racer').to_dict(),
            **kwargs
        )


class CheckoutInitiationTests(MonetizationTestCase):
    @patch('stripe.checkout.Session.create')
    def test_tip_below_minimum_is_rejected_before_any_processor_call(self, mock_create):
        response = self.client.post(self.checkout_url, {
            'kind': 'tip', 'creator_id': self.racer.id, 'amount_cents': 99,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('amount_cents', response.data['detail'])
        mock_create.assert_not_called()
        self.assertEqual(MonetizableCharge.objects.count(), 0)

    @patch('stripe.checkout.Session.create')
    def test_minimum_tip_creates_hosted_checkout(self, mock_create):
        mock_create.return_value = hosted_session()

        response = self.client.post(self.checkout_url, {
            'kind': 'tip', 'creator_id': self.racer.id, 'amount_cents': 100, 'message': 'Go fast!',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['redirect_url'], 'https://checkout.stripe.com/c/pay/cs_test_123')
        self.assertNotIn('confirmation_secret', response.data)

        charge = MonetizableCharge.objects.get()
        self.assertEqual(charge.status, 'pending')
        self.assertEqual(charge.amount_cents, 100)
        self.assertEqual(charge.external_reference, 'cs_test_123')
        self.assertEqual(charge.payload['message'], 'Go fast!')
        self.assertEqual(str(charge.correlation_id), response.data['correlation_id'])

        kwargs = mock_create.call_args.kwargs
        self.assertEqual(kwargs['mode'], 'payment')
        self.assertEqual(kwargs['line_items'][0]['price_data']['unit_amount'], 100)
        self.assertEqual(kwargs['metadata']['correlation_id'], str(charge.correlation_id))
        self.assertTrue(kwargs['success_url'].startswith('https://grandstand.test/payment/success?'))
        self.assertIn('kind=tip', kwargs['success_url'])
        self.assertIn('creator=racer1', kwargs['success_url'])
        self.assertIn('amount=1.00', kwargs['success_url'])
        self.assertIn(f'correlation={charge.correlation_id}', kwargs['success_url'])
        self.assertTrue(kwargs['success_url'].endswith('&session_id={CHECKOUT_SESSION_ID}'))
        self.assertTrue(kwargs['cancel_url'].startswith('https://grandstand.test/payment/cancel?'))

    @patch('stripe.checkout.Session.create')
    def test_cannot_support_yourself(self, mock_create):
        self.client.force_authenticate(user=self.racer)
        response = self.client.post(self.checkout_url, {
            'kind': 'tip', 'creator_id': self.racer.id, 'amount_cents': 500,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        mock_create.assert_not_called()

    @patch('stripe.checkout.Session.create')
    def test_payee_must_be_a_racer(self, mock_create):
        other_fan = User.objects.create_user(username='fan2', email='fan2@example.com', password='password123')
        response = self.client.post(self.checkout_url, {
            'kind': 'tip', 'creator_id': other_fan.id, 'amount_cents': 500,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        mock_create.assert_not_called()

    @patch('stripe.checkout.Session.create')
    def test_subscription_amount_must_match_tier_price(self, mock_create):
        response = self.client.post(self.checkout_url, {
            'kind': 'subscription', 'creator_id': self.racer.id, 'tier_id': self.tier.id, 'amount_cents': 500,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        mock_create.assert_not_called()

    @patch('stripe.checkout.Session.create')
    def test_inactive_tier_is_rejected(self, mock_create):
        self.tier.active = False
        self.tier.save()

        response = self.client.post(self.checkout_url, {
            'kind': 'subscription', 'creator_id': self.racer.id, 'tier_id': self.tier.id,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        mock_create.assert_not_called()

    @patch('stripe.checkout.Session.create')
    def test_subscription_prefers_hosted_checkout(self, mock_create):
        mock_create.return_value = hosted_session('cs_test_sub')

        response = self.client.post(self.checkout_url, {
            'kind': 'subscription', 'creator_id': self.racer.id, 'tier_id': self.tier.id,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('redirect_url', response.data)
        kwargs = mock_create.call_args.kwargs
        self.assertEqual(kwargs['mode'], 'subscription')
        self.assertEqual(kwargs['line_items'][0]['price'], 'price_pitcrew')
        self.assertIn('tier=Pit+Crew', kwargs['success_url'])

        charge = MonetizableCharge.objects.get()
        self.assertEqual(charge.amount_cents, 999)
        self.assertEqual(charge.tier, self.tier)

    @override_settings(MONETIZATION=INLINE_MONETIZATION)
    @patch('stripe.Subscription.create')
    @patch('stripe.Customer.create')
    def test_inline_subscription_returns_confirmation_secret(self, mock_customer, mock_subscription):
        mock_customer.return_value = MagicMock(id='cus_fan1')
        subscription = MagicMock(id='sub_123')
        subscription.latest_invoice.payment_intent.client_secret = 'pi_123_secret_456'
        mock_subscription.return_value = subscription

        response = self.client.post(self.checkout_url, {
            'kind': 'subscription', 'creator_id': self.racer.id, 'tier_id': self.tier.id,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['confirmation_secret'], 'pi_123_secret_456')
        self.assertNotIn('redirect_url', response.data)
        self.assertNotIn('session_id', response.data['return_url'])

        self.assertEqual(mock_subscription.call_args.kwargs['payment_behavior'], 'default_incomplete')
        self.assertEqual(mock_subscription.call_args.kwargs['customer'], 'cus_fan1')
        self.fan.refresh_from_db()
        self.assertEqual(self.fan.stripe_customer_id, 'cus_fan1')
        self.assertEqual(MonetizableCharge.objects.get().external_reference, 'sub_123')

    @override_settings(MONETIZATION=INLINE_MONETIZATION)
    @patch('stripe.Subscription.create')
    @patch('stripe.Customer.create')
    def test_inline_subscription_reuses_existing_customer(self, mock_customer, mock_subscription):
        self.fan.stripe_customer_id = 'cus_existing'
        self.fan.save()
        subscription = MagicMock(id='sub_456')
        subscription.latest_invoice.payment_intent.client_secret = 'pi_secret'
        mock_subscription.return_value = subscription

        handle = initiate_charge('subscription', self.fan, self.racer, tier=self.tier)

        mock_customer.assert_not_called()
        self.assertEqual(handle.confirmation_secret, 'pi_secret')

    @patch('stripe.Subscription.create')
    @patch('stripe.Customer.create')
    @patch('stripe.checkout.Session.create')
    def test_hosted_session_without_url_falls_back_to_inline(self, mock_session, mock_customer, mock_subscription):
        mock_session.return_value = hosted_session('cs_test_nourl', url=None)
        mock_customer.return_value = MagicMock(id='cus_fan1')
        subscription = MagicMock(id='sub_789')
        subscription.latest_invoice.payment_intent.client_secret = 'pi_secret_789'
        mock_subscription.return_value = subscription

        handle = initiate_charge('subscription', self.fan, self.racer, tier=self.tier)

        self.assertIsNone(handle.redirect_url)
        self.assertEqual(handle.confirmation_secret, 'pi_secret_789')
        self.assertEqual(handle.external_reference, 'sub_789')

    @patch('stripe.checkout.Session.create')
    def test_sponsorship_below_package_price_is_rejected(self, mock_create):
        with self.assertRaises(InvalidCharge):
            initiate_charge('sponsorship', self.fan, self.racer, amount_cents=20000, package=self.package)
        mock_create.assert_not_called()

    @patch('stripe.checkout.Session.create')
    def test_sponsorship_defaults_to_package_price(self, mock_create):
        mock_create.return_value = hosted_session('cs_test_sponsor')

        handle = initiate_charge('sponsorship', self.fan, self.racer, package=self.package)

        self.assertEqual(handle.amount_cents, 25000)
        charge = MonetizableCharge.objects.get()
        self.assertEqual(charge.package, self.package)
        self.assertEqual(charge.payload['car_placement'], 'Hood')
        self.assertIn('package=Hood+Decal', mock_create.call_args.kwargs['success_url'])

    @patch('stripe.checkout.Session.create')
    def test_processor_failure_persists_nothing(self, mock_create):
        mock_create.side_effect = stripe.APIConnectionError('Network down')

        response = self.client.post(self.checkout_url, {
            'kind': 'tip', 'creator_id': self.racer.id, 'amount_cents': 500,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertTrue(response.data['retryable'])
        self.assertEqual(MonetizableCharge.objects.count(), 0)

    @override_settings(STRIPE_SECRET_KEY='')
    @patch('stripe.checkout.Session.create')
    def test_missing_processor_key_disables_monetization(self, mock_create):
        response = self.client.post(self.checkout_url, {
            'kind': 'tip', 'creator_id': self.racer.id, 'amount_cents': 500,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertFalse(response.data['monetization_enabled'])
        mock_create.assert_not_called()
        self.assertEqual(MonetizableCharge.objects.count(), 0)

    def test_continuation_urls_for_inline_confirmation_have_no_session_placeholder(self):
        correlation_id = uuid.uuid4()
        success_url, cancel_url = continuation_urls('tip', self.racer, correlation_id, amount_cents=2500, hosted=False)

        self.assertIn('amount=25.00', success_url)
        self.assertNotIn('CHECKOUT_SESSION_ID', success_url)
        self.assertIn(f'correlation={correlation_id}', cancel_url)


class CheckoutFinalizeTests(MonetizationTestCase):
    @patch('stripe.checkout.Session.retrieve')
    def test_paid_checkout_applies_split_and_spend(self, mock_retrieve):
        charge = self.create_charge(amount_cents=2500)
        mock_retrieve.return_value = paid_session(charge)

        response = self.client.post(self.finalize_url, {'session_id': charge.external_reference}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'succeeded')
        self.assertEqual(response.data['creator_cents'], 2000)
        self.assertEqual(response.data['platform_cents'], 500)
        self.assertFalse(response.data['already_finalized'])
        self.assertEqual(response.data['fan_status']['state'], 'fan')
        self.assertEqual(response.data['fan_status']['fan_count'], 1)

        charge.refresh_from_db()
        self.assertEqual(charge.status, 'succeeded')
        self.assertIsNotNone(charge.finalized_at)
        relationship = FanRelationship.objects.get(fan=self.fan, creator=self.racer)
        self.assertTrue(relationship.is_following)
        self.assertEqual(relationship.cumulative_spend_cents, 2500)

    @patch('stripe.checkout.Session.retrieve')
    def test_finalize_is_idempotent(self, mock_retrieve):
        charge = self.create_charge(amount_cents=2500)
        mock_retrieve.return_value = paid_session(charge)

        results = [finalize_charge(charge.external_reference) for _ in range(3)]

        self.assertFalse(results[0].already_finalized)
        self.assertTrue(results[1].already_finalized)
        self.assertTrue(results[2].already_finalized)
        self.assertEqual(mock_retrieve.call_count, 1)
        relationship = FanRelationship.objects.get(fan=self.fan, creator=self.racer)
        self.assertEqual(relationship.cumulative_spend_cents, 2500)

    @patch('stripe.checkout.Session.retrieve')
    def test_first_large_tip_makes_a_superfan(self, mock_retrieve):
        charge = self.create_charge(amount_cents=5000)
        mock_retrieve.return_value = paid_session(charge)

        result = finalize_charge(charge.external_reference)

        self.assertEqual(result.fan_status['state'], 'superfan')
        relationship = FanRelationship.objects.get(fan=self.fan, creator=self.racer)
        self.assertTrue(relationship.is_following)
        self.assertTrue(relationship.is_superfan)
        profile = CreatorProfile.objects.get(user=self.racer)
        self.assertEqual(profile.fan_count, 1)
        self.assertEqual(profile.superfan_count, 1)

    @patch('stripe.checkout.Session.retrieve')
    def test_spend_from_fan_who_unfollowed_after_supporting_does_not_refollow(self, mock_retrieve):
        FanRelationship.objects.create(
            fan=self.fan,
            creator=self.racer,
            is_following=False,
            cumulative_spend_cents=1000,
            last_support_at=timezone.now(),
        )
        charge = self.create_charge(amount_cents=6000)
        mock_retrieve.return_value = paid_session(charge)

        result = finalize_charge(charge.external_reference)

        self.assertEqual(result.fan_status['state'], 'visitor')
        relationship = FanRelationship.objects.get(fan=self.fan, creator=self.racer)
        self.assertFalse(relationship.is_following)
        self.assertEqual(relationship.cumulative_spend_cents, 7000)

    @patch('stripe.checkout.Session.retrieve')
    def test_first_charge_after_follow_and_unfollow_makes_a_fan(self, mock_retrieve):
        follow(self.fan.pk, self.racer)
        unfollow(self.fan.pk, self.racer)
        charge = self.create_charge(amount_cents=2500)
        mock_retrieve.return_value = paid_session(charge)

        result = finalize_charge(charge.external_reference)

        self.assertEqual(result.fan_status['state'], 'fan')
        self.assertTrue(result.fan_status['changed'])
        self.assertTrue(FanRelationship.objects.get(fan=self.fan, creator=self.racer).is_following)

    @patch('stripe.checkout.Session.retrieve')
    def test_paid_charge_succeeds_after_payee_changes_role(self, mock_retrieve):
        charge = self.create_charge(amount_cents=2500)
        mock_retrieve.return_value = paid_session(charge)
        User.objects.filter(pk=self.racer.pk).update(user_type='fan')

        result = finalize_charge(charge.external_reference)

        self.assertEqual(result.status, 'succeeded')
        relationship = FanRelationship.objects.get(fan=self.fan, creator=self.racer)
        self.assertEqual(relationship.cumulative_spend_cents, 2500)

    @patch('stripe.checkout.Session.retrieve')
    def test_paid_charge_to_self_succeeds_without_fan_spend(self, mock_retrieve):
        charge = self.create_charge(amount_cents=2500, payer=self.racer)
        mock_retrieve.return_value = paid_session(charge)

        with self.assertLogs('grandstand', level='WARNING'):
            result = finalize_charge(charge.external_reference)

        self.assertEqual(result.status, 'succeeded')
        self.assertIsNone(result.fan_status)
        self.assertFalse(FanRelationship.objects.exists())

    @patch('monetization.checkout.record_spend')
    @patch('stripe.checkout.Session.retrieve')
    def test_failed_spend_recording_rolls_back_the_charge(self, mock_retrieve, mock_record_spend):
        charge = self.create_charge(amount_cents=2500)
        mock_retrieve.return_value = paid_session(charge)
        mock_record_spend.side_effect = DatabaseError('database is locked')

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(DatabaseError):
                finalize_charge(charge.external_reference)

        self.assertEqual(callbacks, [])
        charge.refresh_from_db()
        self.assertEqual(charge.status, 'pending')
        self.assertIsNone(charge.creator_cents)
        self.assertIsNone(charge.platform_cents)
        self.assertIsNone(charge.finalized_at)
        self.assertFalse(FanRelationship.objects.exists())

    @patch('fans.services.qualifies_as_superfan')
    @patch('stripe.checkout.Session.retrieve')
    def test_error_after_relationship_write_rolls_back_both(self, mock_retrieve, mock_qualifies):
        charge = self.create_charge(amount_cents=2500)
        mock_retrieve.return_value = paid_session(charge)
        mock_qualifies.side_effect = RuntimeError('boom')

        with self.assertRaises(RuntimeError):
            finalize_charge(charge.external_reference)

        charge.refresh_from_db()
        self.assertEqual(charge.status, 'pending')
        self.assertIsNone(charge.finalized_at)
        self.assertFalse(FanRelationship.objects.exists())

    @patch('stripe.checkout.Session.retrieve')
    def test_open_checkout_stays_pending(self, mock_retrieve):
        charge = self.create_charge()
        mock_retrieve.return_value = paid_session(charge, status='open', payment_status='unpaid')

        result = finalize_charge(charge.external_reference)

        self.assertEqual(result.status, 'pending')
        self.assertFalse(FanRelationship.objects.exists())

        mock_retrieve.return_value = paid_session(charge)
        self.assertEqual(finalize_charge(charge.external_reference).status, 'succeeded')

    @patch('stripe.checkout.Session.retrieve')
    def test_expired_checkout_is_canceled(self, mock_retrieve):
        charge = self.create_charge()
        mock_retrieve.return_value = paid_session(charge, status='expired', payment_status='unpaid')

        result = finalize_charge(charge.external_reference)

        self.assertEqual(result.status, 'canceled')
        self.assertIsNone(result.creator_cents)

    @patch('stripe.Subscription.retrieve')
    def test_canceled_subscription_marks_charge_failed(self, mock_retrieve):
        charge = self.create_charge(amount_cents=999, kind='subscription', reference='sub_failed', tier=self.tier)
        mock_retrieve.return_value = MagicMock(status='canceled', metadata={})

        self.assertEqual(finalize_charge('sub_failed').status, 'failed')

    @patch('stripe.checkout.Session.retrieve')
    def test_unknown_reference_without_correlation_is_ambiguous(self, mock_retrieve):
        mock_retrieve.return_value = MagicMock(
            status='complete', payment_status='paid', amount_total=2500, metadata={}
        )

        with self.assertLogs('grandstand', level='ERROR'):
            response = self.client.post(self.finalize_url, {'session_id': 'cs_test_unknown'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(response.data['inconclusive'])
        self.assertFalse(FanRelationship.objects.exists())

    @patch('stripe.checkout.Session.retrieve')
    def test_charge_is_found_through_processor_correlation_id(self, mock_retrieve):
        charge = self.create_charge(reference=None)
        mock_retrieve.return_value = MagicMock(
            status='complete',
            payment_status='paid',
            amount_total=2500,
            metadata={'correlation_id': str(charge.correlation_id)},
        )

        result = finalize_charge('cs_test_late')

        self.assertEqual(result.status, 'succeeded')
        charge.refresh_from_db()
        self.assertEqual(charge.external_reference, 'cs_test_late')

    @patch('stripe.checkout.Session.retrieve')
    def test_amount_mismatch_is_ambiguous(self, mock_retrieve):
        charge = self.create_charge(amount_cents=2500)
        session = paid_session(charge)
        session.amount_total = 100
        mock_retrieve.return_value = session

        with self.assertRaises(ChargeFinalizationAmbiguous):
            finalize_charge(charge.external_reference)
        charge.refresh_from_db()
        self.assertEqual(charge.status, 'pending')

    @patch('stripe.checkout.Session.retrieve')
    def test_earnings_refresh_runs_after_commit(self, mock_retrieve):
        charge = self.create_charge(amount_cents=2500)
        mock_retrieve.return_value = paid_session(charge)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            finalize_charge(charge.external_reference)

        self.assertEqual(len(callbacks), 1)
        profile = CreatorProfile.objects.get(user=self.racer)
        self.assertEqual(profile.total_earnings_cents, 2000)
        self.assertEqual(profile.supporter_count, 1)
        self.assertIsNotNone(profile.stats_refreshed_at)

    @patch('monetization.tasks.refresh_creator_earnings.delay')
    @patch('stripe.checkout.Session.retrieve')
    def test_earnings_dispatch_failure_keeps_the_charge(self, mock_retrieve, mock_delay):
        charge = self.create_charge(amount_cents=2500)
        mock_retrieve.return_value = paid_session(charge)
        mock_delay.side_effect = OSError('Broker unavailable')

        with self.assertLogs('grandstand', level='WARNING') as logs:
            with self.captureOnCommitCallbacks(execute=True):
                finalize_charge(charge.external_reference)

        self.assertTrue(any('earnings refresh' in line for line in logs.output))
        charge.refresh_from_db()
        self.assertEqual(charge.status, 'succeeded')

    @patch('stripe.checkout.Session.retrieve')
    def test_processor_outage_leaves_charge_pending(self, mock_retrieve):
        charge = self.create_charge()
        mock_retrieve.side_effect = stripe.APIConnectionError('Network down')

        response = self.client.post(self.finalize_url, {'session_id': charge.external_reference}, format='json')

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        charge.refresh_from_db()
        self.assertEqual(charge.status, 'pending')

    @patch('stripe.checkout.Session.retrieve')
    def test_cannot_finalize_another_payers_charge(self, mock_retrieve):
        charge = self.create_charge()
        intruder = User.objects.create_user(username='intruder', email='intruder@example.com', password='password123')
        self.client.force_authenticate(user=intruder)

        response = self.client.post(self.finalize_url, {'session_id': charge.external_reference}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        mock_retrieve.assert_not_called()

    @patch('stripe.checkout.Session.retrieve')
    def test_cannot_claim_another_payers_charge_through_correlation_id(self, mock_retrieve):
        charge = self.create_charge(reference=None)
        mock_retrieve.return_value = MagicMock(
            status='complete',
            payment_status='paid',
            amount_total=2500,
            metadata={'correlation_id': str(charge.correlation_id)},
        )
        intruder = User.objects.create_user(username='intruder', email='intruder@example.com', password='password123')
        self.client.force_authenticate(user=intruder)

        response = self.client.post(self.finalize_url, {'session_id': 'cs_test_late'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        charge.refresh_from_db()
        self.assertEqual(charge.status, 'pending')
        self.assertIsNone(charge.external_reference)
        self.assertFalse(FanRelationship.objects.exists())

    def test_finalize_requires_a_reference(self):
        response = self.client.post(self.finalize_url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class CheckoutCancelTests(MonetizationTestCase):
    def test_cancel_pending_charge(self):
        charge = self.create_charge()

        response = self.client.post(self.cancel_url, {'correlation_id': str(charge.correlation_id)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'canceled')

    def test_cancel_leaves_succeeded_charge_alone(self):
        charge = self.create_charge(status='succeeded', creator_cents=2000, platform_cents=500)

        result = cancel_charge(charge.correlation_id)

        self.assertEqual(result.status, 'succeeded')

    def test_cannot_cancel_another_payers_charge(self):
        charge = self.create_charge()
        intruder = User.objects.create_user(username='intruder', email='intruder@example.com', password='password123')
        self.client.force_authenticate(user=intruder)

        response = self.client.post(self.cancel_url, {'correlation_id': str(charge.correlation_id)}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        charge.refresh_from_db()
        self.assertEqual(charge.status, 'pending')


class MonetizationReadTests(MonetizationTestCase):
    def test_pending_context_for_success_page(self):
        charge = self.create_charge(amount_cents=2500)
        url = reverse('monetization:checkout-pending', kwargs={'correlation_id': str(charge.correlation_id)})

        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['amount'], '25.00')
        self.assertEqual(response.data['creator']['username'], 'racer1')
        self.assertEqual(response.data['status'], 'pending')

    def test_pending_context_is_private_to_payer(self):
        charge = self.create_charge()
        self.client.force_authenticate(user=self.racer)
        url = reverse('monetization:checkout-pending', kwargs={'correlation_id': str(charge.correlation_id)})

        self.assertEqual(self.client.get(url).status_code, status.HTTP_404_NOT_FOUND)

    def test_split_estimate_endpoint(self):
        response = self.client.get(reverse('monetization:split'), {'gross_cents': 2500})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'gross_cents': 2500, 'creator_cents': 2000, 'platform_cents': 500})

    def test_split_estimate_rejects_negative_amounts(self):
        response = self.client.get(reverse('monetization:split'), {'gross_cents': -5})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_status_reports_enabled(self):
        response = self.client.get(reverse('monetization:status'))

        self.assertTrue(response.data['enabled'])
        self.assertEqual(response.data['min_tip_cents'], 100)
        self.assertEqual(response.data['platform_fee_percent'], 20)

    @override_settings(STRIPE_SECRET_KEY='')
    def test_status_reports_disabled_without_processor_key(self):
        response = self.client.get(reverse('monetization:status'))
        self.assertFalse(response.data['enabled'])

    def test_tiers_filtered_by_creator(self):
        other_racer = User.objects.create_user(
            username='racer2', email='racer2@example.com', password='password123', user_type='racer'
        )
        SubscriptionTier.objects.create(creator=other_racer, name='Fan Club', price_cents=499)

        response = self.client.get(reverse('monetization:tiers-list'), {'creator': self.racer.id})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        results = response.data['results'] if isinstance(response.data, dict) else response.data
        self.assertEqual([tier['name'] for tier in results], ['Pit Crew'])
        self.assertEqual(results[0]['price'], '9.99')
        self.assertEqual(results[0]['benefits'], ['Exclusive posts', 'Supporter badge'])

    def test_charge_list_by_role(self):
        self.create_charge(reference='cs_test_a')
        self.client.force_authenticate(user=self.racer)

        received = self.client.get(reverse('monetization:charges-list'), {'role': 'payee'})
        made = self.client.get(reverse('monetization:charges-list'), {'role': 'payer'})

        received = received.data['results'] if isinstance(received.data, dict) else received.data
        made = made.data['results'] if isinstance(made.data, dict) else made.data
        self.assertEqual(len(received), 1)
        self.assertEqual(len(made), 0)


class EarningsTaskTests(TestCase):
    def test_refresh_sums_succeeded_charges_only(self):
        racer = User.objects.create_user(
            username='racer1', email='racer1@example.com', password='password123', user_type='racer'
        )
        fans = [
            User.objects.create_user(username=f'fan{i}', email=f'fan{i}@example.com', password='password123')
            for i in range(2)
        ]
        for payer, amount, charge_status in ((fans[0], 2500, 'succeeded'), (fans[0], 1000, 'succeeded'),
                                             (fans[1], 5000, 'failed')):
            revenue = split(amount)
            MonetizableCharge.objects.create(
                payer=payer, payee=racer, amount_cents=amount, kind='tip', status=charge_status,
                creator_cents=revenue.creator_cents if charge_status == 'succeeded' else None,
            )

        stats = refresh_creator_earnings(racer.id)

        self.assertEqual(stats, {'total_earnings_cents': 2800, 'supporter_count': 1})
        self.assertEqual(CreatorProfile.objects.get(user=racer).total_earnings_cents, 2800)


class GatewayConfigurationTests(SimpleTestCase):
    @override_settings(STRIPE_SECRET_KEY='')
    def test_gateway_without_key_raises_configuration_error(self):
        from .processor import StripeGateway

        with self.assertRaises(ConfigurationError):
            StripeGateway().retrieve('cs_test_123')

    @patch('stripe.checkout.Session.create')
    def test_stripe_error_becomes_initiation_failure(self, mock_create):
        from .processor import StripeGateway

        mock_create.side_effect = stripe.InvalidRequestError('No such price', 'price')
        with self.assertRaises(CheckoutInitiationFailed):
            StripeGateway(api_key='sk_test_x').create_payment_session(
                500, 'Tip', {'kind': 'tip'}, 'https://a/success', 'https://a/cancel'
            )
