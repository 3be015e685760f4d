from django.core.cache import cache
from django.db import DatabaseError, transaction
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework.test import APIClient, APITestCase
from rest_framework import status
from unittest.mock import patch

from users.models import CreatorProfile, User
from .context import get_fan_context
from .models import FanRelationship
from . import services


class FanTestCase(APITestCase):
    def setUp(self):
        """Set up test data"""
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
            user_type='racer'
        )

        self.client = APIClient()
        self.client.force_authenticate(user=self.fan)

        self.follow_url = reverse('fans:creators-follow', kwargs={'pk': self.racer.pk})
        self.unfollow_url = reverse('fans:creators-unfollow', kwargs={'pk': self.racer.pk})
        self.status_url = reverse('fans:creators-status', kwargs={'pk': self.racer.pk})


class FollowTests(FanTestCase):
    def test_follow_twice_counts_once(self):
        """Following an already followed creator changes nothing"""
        first = self.client.post(self.follow_url)
        second = self.client.post(self.follow_url)

        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertTrue(first.data['changed'])
        self.assertFalse(second.data['changed'])
        self.assertEqual(second.data['state'], 'fan')
        self.assertEqual(second.data['fan_count'], 1)
        self.assertEqual(FanRelationship.objects.count(), 1)
        self.assertEqual(CreatorProfile.objects.get(user=self.racer).fan_count, 1)

    def test_unfollow_without_follow_is_a_no_op(self):
        response = self.client.post(self.unfollow_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['state'], 'visitor')
        self.assertFalse(response.data['changed'])
        self.assertFalse(FanRelationship.objects.exists())

    def test_unfollow_never_drives_counts_negative(self):
        self.client.post(self.follow_url)
        self.client.post(self.unfollow_url)
        response = self.client.post(self.unfollow_url)

        self.assertEqual(response.data['fan_count'], 0)
        self.assertEqual(CreatorProfile.objects.get(user=self.racer).fan_count, 0)

    def test_cannot_follow_yourself(self):
        self.client.force_authenticate(user=self.racer)
        response = self.client.post(self.follow_url)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(FanRelationship.objects.exists())

    def test_only_racers_can_be_followed(self):
        other_fan = User.objects.create_user(username='fan2', email='fan2@example.com', password='password123')
        url = reverse('fans:creators-follow', kwargs={'pk': other_fan.pk})

        response = self.client.post(url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_status_for_visitor(self):
        response = self.client.get(self.status_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['state'], 'visitor')
        self.assertEqual(response.data['cumulative_spend_cents'], 0)

    def test_follow_requires_authentication(self):
        self.client.force_authenticate(user=None)
        response = self.client.post(self.follow_url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_follow_stands_when_count_refresh_fails(self):
        with patch.object(FanRelationship.objects, 'filter', side_effect=DatabaseError('locked')):
            with self.assertLogs('grandstand', level='WARNING'):
                fan_status = services.follow(self.fan.pk, self.racer)

        self.assertTrue(fan_status.is_following)
        self.assertIsNone(fan_status.fan_count)
        self.assertTrue(FanRelationship.objects.get(fan=self.fan, creator=self.racer).is_following)


class SuperfanTests(FanTestCase):
    def test_superfan_at_threshold(self):
        services.follow(self.fan.pk, self.racer)

        below = services.record_spend(self.fan.pk, self.racer, 4999)
        self.assertEqual(below.state, 'fan')

        at = services.record_spend(self.fan.pk, self.racer, 1)
        self.assertEqual(at.state, 'superfan')
        self.assertTrue(at.changed)
        self.assertEqual(at.superfan_count, 1)

    @override_settings(SUPERFAN_THRESHOLD_CENTS=1000)
    def test_threshold_comes_from_settings(self):
        fan_status = services.record_spend(self.fan.pk, self.racer, 1000)
        self.assertEqual(fan_status.state, 'superfan')

    def test_first_support_auto_follows(self):
        fan_status = services.record_spend(self.fan.pk, self.racer, 500)

        self.assertTrue(fan_status.changed)
        self.assertEqual(fan_status.state, 'fan')
        self.assertEqual(fan_status.fan_count, 1)

    def test_unfollow_clears_superfan_and_keeps_spend(self):
        services.record_spend(self.fan.pk, self.racer, 6000)

        unfollowed = services.unfollow(self.fan.pk, self.racer)
        self.assertEqual(unfollowed.state, 'visitor')
        self.assertEqual(unfollowed.cumulative_spend_cents, 6000)
        self.assertEqual(unfollowed.superfan_count, 0)

        refollowed = services.follow(self.fan.pk, self.racer)
        self.assertEqual(refollowed.state, 'superfan')
        self.assertEqual(refollowed.superfan_count, 1)

    def test_first_support_after_follow_and_unfollow_follows_again(self):
        services.follow(self.fan.pk, self.racer)
        services.unfollow(self.fan.pk, self.racer)

        fan_status = services.record_spend(self.fan.pk, self.racer, 500)

        self.assertTrue(fan_status.changed)
        self.assertEqual(fan_status.state, 'fan')
        self.assertEqual(fan_status.fan_count, 1)

    def test_support_after_unfollowing_a_supported_creator_keeps_visitor(self):
        services.record_spend(self.fan.pk, self.racer, 500)
        services.unfollow(self.fan.pk, self.racer)

        fan_status = services.record_spend(self.fan.pk, self.racer, 500)

        self.assertEqual(fan_status.state, 'visitor')
        self.assertEqual(fan_status.cumulative_spend_cents, 1000)

    def test_spend_role_check_can_be_skipped_for_paid_charges(self):
        other_fan = User.objects.create_user(username='fan2', email='fan2@example.com', password='password123')

        with self.assertRaises(services.InvalidRelationship):
            services.record_spend(self.fan.pk, other_fan, 500)

        fan_status = services.record_spend(self.fan.pk, other_fan, 500, check_role=False)
        self.assertEqual(fan_status.cumulative_spend_cents, 500)

        with self.assertRaises(services.InvalidRelationship):
            services.record_spend(self.fan.pk, self.fan, 500, check_role=False)

    def test_negative_spend_is_rejected(self):
        with self.assertRaises(ValueError):
            services.record_spend(self.fan.pk, self.racer, -100)

    def test_spend_never_decreases(self):
        services.record_spend(self.fan.pk, self.racer, 1500)
        services.record_spend(self.fan.pk, self.racer, 0)
        fan_status = services.record_spend(self.fan.pk, self.racer, 500)

        self.assertEqual(fan_status.cumulative_spend_cents, 2000)

    def test_superfans_listed_biggest_first(self):
        big = User.objects.create_user(username='bigfan', email='big@example.com', password='password123')
        services.record_spend(self.fan.pk, self.racer, 5000)
        services.record_spend(big.pk, self.racer, 9000)
        services.record_spend(
            User.objects.create_user(username='small', email='small@example.com', password='password123').pk,
            self.racer,
            100
        )

        response = self.client.get(reverse('fans:creators-superfans', kwargs={'pk': self.racer.pk}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row['fan']['username'] for row in response.data], ['bigfan', 'fan1'])


class CreatorStatsTests(FanTestCase):
    def test_stats_read_from_creator_profile(self):
        services.record_spend(self.fan.pk, self.racer, 5000)

        response = self.client.get(reverse('fans:creators-stats', kwargs={'pk': self.racer.pk}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['fan_count'], 1)
        self.assertEqual(response.data['superfan_count'], 1)
        self.assertFalse(response.data['stale'])

    def test_stats_fall_back_to_last_known_values(self):
        services.follow(self.fan.pk, self.racer)

        with patch.object(CreatorProfile.objects, 'filter', side_effect=DatabaseError('unavailable')):
            stats = services.get_creator_stats(self.racer.pk)

        self.assertTrue(stats['stale'])
        self.assertEqual(stats['fan_count'], 1)

    def test_stats_fall_back_to_zero_without_history(self):
        with patch.object(CreatorProfile.objects, 'filter', side_effect=DatabaseError('unavailable')):
            stats = services.get_creator_stats(self.racer.pk)

        self.assertTrue(stats['stale'])
        self.assertEqual(stats['fan_count'], 0)
        self.assertEqual(stats['total_earnings_cents'], 0)


class FanContextTests(FanTestCase):
    def test_context_tracks_follow_and_unfollow(self):
        context_url = reverse('fans:context')

        self.assertEqual(self.client.get(context_url).data['following'], [])

        self.client.post(self.follow_url)
        self.assertEqual(self.client.get(context_url).data['following'], [self.racer.pk])

        self.client.post(self.unfollow_url)
        self.assertEqual(self.client.get(context_url).data['following'], [])

    def test_context_lists_superfan_badges_and_spend(self):
        services.record_spend(self.fan.pk, self.racer, 5000)

        context = get_fan_context(self.fan.pk)

        self.assertEqual(context['superfan_of'], [self.racer.pk])
        self.assertEqual(context['spend_by_creator'], {str(self.racer.pk): 5000})

    def test_spend_refreshes_caches_only_after_commit(self):
        get_fan_context(self.fan.pk)
        context_key = f'fans:context:{self.fan.pk}'
        stats_key = services.LAST_KNOWN_STATS_KEY.format(creator_id=self.racer.pk)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            services.record_spend(self.fan.pk, self.racer, 5000)
            self.assertIsNotNone(cache.get(context_key))
            self.assertIsNone(cache.get(stats_key))

        self.assertEqual(len(callbacks), 2)
        self.assertIsNone(cache.get(context_key))
        self.assertEqual(cache.get(stats_key)['superfan_count'], 1)
        self.assertEqual(get_fan_context(self.fan.pk)['superfan_of'], [self.racer.pk])

    def test_rolled_back_spend_leaves_caches_alone(self):
        cached = get_fan_context(self.fan.pk)
        stats_key = services.LAST_KNOWN_STATS_KEY.format(creator_id=self.racer.pk)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(RuntimeError):
                with transaction.atomic():
                    services.record_spend(self.fan.pk, self.racer, 5000)
                    raise RuntimeError('charge finalization failed')

        self.assertEqual(callbacks, [])
        self.assertEqual(cache.get(f'fans:context:{self.fan.pk}'), cached)
        self.assertIsNone(cache.get(stats_key))
        self.assertFalse(FanRelationship.objects.exists())

    def test_following_list(self):
        self.client.post(self.follow_url)

        response = self.client.get(reverse('fans:following-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['creator']['username'], 'racer1')
        self.assertEqual(response.data[0]['state'], 'fan')


class RelationshipModelTests(TestCase):
    def test_state_derives_from_flags(self):
        fan = User.objects.create_user(username='fan1', email='fan1@example.com', password='password123')
        racer = User.objects.create_user(
            username='racer1', email='racer1@example.com', password='password123', user_type='racer'
        )
        relationship = FanRelationship(fan=fan, creator=racer)

        self.assertEqual(relationship.state, 'visitor')
        relationship.is_following = True
        self.assertEqual(relationship.state, 'fan')
        relationship.is_superfan = True
        self.assertEqual(relationship.state, 'superfan')
        self.assertIn('superfan', str(relationship))
