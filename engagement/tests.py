from datetime import timedelta
from django.db import DatabaseError, IntegrityError
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient, APITestCase
from rest_framework import status
from unittest.mock import patch

from users.models import User
from .gate import EngagementSignals, is_engaged
from .models import ProfileViewAggregate, ProfileViewEvent
from .recorder import get_view_total, record_view

ENGAGED = {'dwell_seconds': 6, 'scrolled': True, 'clicked': False}


class EngagementGateTests(SimpleTestCase):
    def test_needs_dwell_and_an_interaction(self):
        self.assertTrue(is_engaged(EngagementSignals(dwell_seconds=5, scrolled=True)))
        self.assertTrue(is_engaged(EngagementSignals(dwell_seconds=30, clicked=True)))
        self.assertFalse(is_engaged(EngagementSignals(dwell_seconds=4.9, scrolled=True, clicked=True)))
        self.assertFalse(is_engaged(EngagementSignals(dwell_seconds=60)))

    @override_settings(ENGAGEMENT={'MIN_DWELL_SECONDS': 10})
    def test_dwell_threshold_comes_from_settings(self):
        self.assertFalse(is_engaged(EngagementSignals(dwell_seconds=9, clicked=True)))
        self.assertTrue(is_engaged(EngagementSignals(dwell_seconds=10, clicked=True)))


class RecordViewTests(TestCase):
    def setUp(self):
        self.racer = User.objects.create_user(
            username='racer1', email='racer1@example.com', password='password123', user_type='racer'
        )
        self.viewer = User.objects.create_user(username='fan1', email='fan1@example.com', password='password123')

    def test_same_viewer_same_day_is_stored_once(self):
        self.assertEqual(record_view(self.racer.pk, self.viewer.pk, 'Mozilla/5.0'), 'recorded')
        self.assertEqual(record_view(self.racer.pk, self.viewer.pk, 'Mozilla/5.0'), 'duplicate')

        self.assertEqual(ProfileViewEvent.objects.count(), 1)
        self.assertEqual(ProfileViewEvent.objects.get().user_agent, 'Mozilla/5.0')

    def test_next_day_counts_again(self):
        yesterday = timezone.localdate() - timedelta(days=1)
        ProfileViewEvent.objects.create(profile=self.racer, viewer=self.viewer, day_date=yesterday)

        self.assertEqual(record_view(self.racer.pk, self.viewer.pk), 'recorded')
        self.assertEqual(get_view_total(self.racer.pk).total, 2)

    def test_self_view_is_never_stored(self):
        self.assertEqual(record_view(self.racer.pk, self.racer.pk), 'skipped')
        self.assertFalse(ProfileViewEvent.objects.exists())
        self.assertFalse(ProfileViewAggregate.objects.exists())

    def test_anonymous_view_is_skipped(self):
        self.assertEqual(record_view(self.racer.pk, None), 'skipped')

    def test_unavailable_event_store_falls_back_to_aggregate(self):
        with patch.object(ProfileViewEvent.objects, 'get_or_create', side_effect=DatabaseError('no such table')):
            with self.assertLogs('grandstand', level='WARNING'):
                outcomes = [record_view(self.racer.pk, self.viewer.pk) for _ in range(3)]

        self.assertEqual(outcomes, ['fallback'] * 3)
        self.assertFalse(ProfileViewEvent.objects.exists())
        # Not deduplicated: every call counts
        self.assertEqual(ProfileViewAggregate.objects.get(profile=self.racer).view_count, 3)

    def test_concurrent_duplicate_insert_is_success(self):
        ProfileViewEvent.objects.create(profile=self.racer, viewer=self.viewer, day_date=timezone.localdate())
        with patch.object(ProfileViewEvent.objects, 'get_or_create', side_effect=IntegrityError('duplicate key')):
            self.assertEqual(record_view(self.racer.pk, self.viewer.pk), 'duplicate')
        self.assertFalse(ProfileViewAggregate.objects.exists())

    def test_other_integrity_errors_are_failures(self):
        with patch.object(ProfileViewEvent.objects, 'get_or_create', side_effect=IntegrityError('FOREIGN KEY constraint failed')):
            with self.assertLogs('grandstand', level='ERROR'):
                outcome = record_view(self.racer.pk, 99999)

        self.assertEqual(outcome, 'failed')
        self.assertFalse(ProfileViewAggregate.objects.exists())

    def test_recording_never_raises(self):
        with patch.object(ProfileViewEvent.objects, 'get_or_create', side_effect=DatabaseError('down')):
            with patch.object(ProfileViewAggregate.objects, 'filter', side_effect=DatabaseError('down')):
                with self.assertLogs('grandstand', level='ERROR'):
                    outcome = record_view(self.racer.pk, self.viewer.pk)

        self.assertEqual(outcome, 'failed')

    def test_total_falls_back_to_aggregate_then_zero(self):
        ProfileViewAggregate.objects.create(profile=self.racer, view_count=7)

        with patch.object(ProfileViewEvent.objects, 'filter', side_effect=DatabaseError('down')):
            total = get_view_total(self.racer.pk)
            self.assertEqual((total.total, total.source), (7, 'aggregate'))

            with patch.object(ProfileViewAggregate.objects, 'filter', side_effect=DatabaseError('down')):
                total = get_view_total(self.racer.pk)
                self.assertEqual((total.total, total.source), (0, 'none'))


class ProfileViewEndpointTests(APITestCase):
    def setUp(self):
        self.racer = User.objects.create_user(
            username='racer1', email='racer1@example.com', password='password123', user_type='racer'
        )
        self.viewer = User.objects.create_user(username='fan1', email='fan1@example.com', password='password123')
        self.client = APIClient()
        self.client.force_authenticate(user=self.viewer)
        self.view_url = reverse('engagement:profiles-record', kwargs={'pk': self.racer.pk})
        self.total_url = reverse('engagement:profiles-total', kwargs={'pk': self.racer.pk})

    def test_engaged_view_is_recorded_once(self):
        first = self.client.post(self.view_url, ENGAGED, format='json', HTTP_USER_AGENT='TestAgent/1.0')
        second = self.client.post(self.view_url, ENGAGED, format='json')

        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertTrue(first.data['recorded'])
        self.assertEqual(second.data['outcome'], 'duplicate')
        self.assertFalse(second.data['recorded'])
        self.assertEqual(ProfileViewEvent.objects.get().user_agent, 'TestAgent/1.0')
        self.assertEqual(self.client.get(self.total_url).data['total'], 1)

    def test_short_visit_is_not_recorded(self):
        response = self.client.post(self.view_url, {'dwell_seconds': 2, 'scrolled': True}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['recorded'])
        self.assertEqual(response.data['outcome'], 'not_engaged')
        self.assertFalse(ProfileViewEvent.objects.exists())

    def test_anonymous_view_is_not_recorded(self):
        self.client.force_authenticate(user=None)
        response = self.client.post(self.view_url, ENGAGED, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['recorded'])
        self.assertFalse(ProfileViewEvent.objects.exists())

    def test_own_profile_view_is_skipped(self):
        self.client.force_authenticate(user=self.racer)
        response = self.client.post(self.view_url, ENGAGED, format='json')

        self.assertEqual(response.data['outcome'], 'skipped')
        self.assertFalse(ProfileViewEvent.objects.exists())

    def test_unknown_profile_is_not_found(self):
        url = reverse('engagement:profiles-record', kwargs={'pk': 99999})
        response = self.client.post(url, ENGAGED, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_total_is_public(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(self.total_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'profile_id': self.racer.pk, 'total': 0, 'source': 'events'})
