from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken
from django.contrib.auth import get_user_model
from fans.context import get_fan_context
from .models import CreatorProfile

User = get_user_model()

class UserAuthTests(APITestCase):
    def setUp(self):
        cache.clear()
        self.login_url = reverse('users:token_obtain_pair')
        self.logout_url = reverse('users:logout')
        self.user = User.objects.create_user(
            username='testuser_auth',
            email='Auth@Example.com',
            password='ComplexP@ssw0rd!'
        )
        self.login_data = {
            'username': 'testuser_auth',
            'password': 'ComplexP@ssw0rd!'
        }

    def test_user_login_success(self):
        """
        Ensure an existing account can obtain a token pair.
        """
        response = self.client.post(self.login_url, self.login_data, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['username'], self.login_data['username'])
        self.assertEqual(response.data['user']['email'], 'auth@example.com')

    def test_user_login_invalid_credentials(self):
        """
        Ensure login fails with invalid credentials.
        """
        invalid_login_data = {'username': 'testuser_auth', 'password': 'wrongpassword'}
        response = self.client.post(self.login_url, invalid_login_data, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertIn('detail', response.data)

    def test_logout_blacklists_refresh_token_and_drops_fan_context(self):
        """
        Signing out revokes the refresh token and the cached fan context.
        """
        tokens = self.client.post(self.login_url, self.login_data, format='json').data
        get_fan_context(self.user.pk)
        self.assertIsNotNone(cache.get(f'fans:context:{self.user.pk}'))

        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.logout_url, {'refresh': tokens['refresh']}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(BlacklistedToken.objects.count(), 1)
        self.assertIsNone(cache.get(f'fans:context:{self.user.pk}'))

        refresh_response = self.client.post(
            reverse('users:token_refresh'), {'refresh': tokens['refresh']}, format='json'
        )
        self.assertEqual(refresh_response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_logout_requires_refresh_token(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.logout_url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_logout_with_invalid_token(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.post(self.logout_url, {'refresh': 'not-a-token'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class UserProfileTests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(username='profileuser', email='profile@example.com', password='ComplexP@ssw0rd!')
        self.racer = User.objects.create_user(
            username='fastracer',
            email='racer@example.com',
            password='ComplexP@ssw0rd!',
            user_type='racer'
        )
        self.client.force_authenticate(user=self.user)

        self.me_url = reverse('users:user-me')
        self.creators_url = reverse('users:user-creators')

    def test_get_current_user_profile_me(self):
        """
        Ensure authenticated user can retrieve their own profile.
        """
        response = self.client.get(self.me_url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['username'], self.user.username)
        self.assertEqual(response.data['user_type'], 'fan')
        self.assertIsNone(response.data['creator_profile'])

    def test_unauthenticated_access_to_me_fails(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(self.me_url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_creators_lists_only_racers(self):
        response = self.client.get(self.creators_url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([user['username'] for user in response.data], ['fastracer'])

    def test_racer_profile_includes_creator_aggregates(self):
        profile = CreatorProfile.for_user(self.racer)
        profile.fan_count = 3
        profile.save()

        response = self.client.get(reverse('users:user-detail', kwargs={'pk': self.racer.pk}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['creator_profile']['fan_count'], 3)


class UserModelTests(TestCase):
    def test_email_is_normalized(self):
        user = User.objects.create_user(username='mixed', email='MiXeD@Example.COM', password='password123')
        self.assertEqual(user.email, 'mixed@example.com')

    def test_creator_role_and_full_name(self):
        racer = User.objects.create_user(
            username='racer1', email='r1@example.com', password='password123',
            user_type='racer', first_name='Speedy', last_name='Racer'
        )
        fan = User.objects.create_user(username='fan1', email='f1@example.com', password='password123')

        self.assertTrue(racer.is_creator)
        self.assertFalse(fan.is_creator)
        self.assertEqual(racer.full_name, 'Speedy Racer')
        self.assertEqual(fan.full_name, 'fan1')

    def test_creator_profile_for_user_is_created_once(self):
        racer = User.objects.create_user(
            username='racer1', email='r1@example.com', password='password123', user_type='racer'
        )
        first = CreatorProfile.for_user(racer)
        second = CreatorProfile.for_user(racer)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(first.display_name, 'racer1')
