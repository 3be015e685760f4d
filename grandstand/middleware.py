import time
import logging
import json
import uuid
from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.utils import timezone

logger = logging.getLogger('grandstand')

REQUEST_ID_HEADER = 'X-Request-ID'


class RequestLogMiddleware:
    """
    Logs every request as one JSON line with its timing. A request id is
    taken from the X-Request-ID header (or generated) and echoed back so
    client reports can be matched with server logs.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        started = time.monotonic()

        response = self.get_response(request)

        user = getattr(request, 'user', None)
        log_data = {
            'request_id': request.request_id,
            'method': request.method,
            'path': request.path,
            'user_id': user.pk if user is not None and user.is_authenticated else None,
            'status_code': response.status_code,
            'duration_ms': round((time.monotonic() - started) * 1000, 2),
        }
        if settings.DEBUG:
            log_data['query_params'] = dict(request.GET.items())

        if response.status_code >= 500:
            logger.error(f"Request: {json.dumps(log_data)}")
        elif response.status_code >= 400:
            logger.warning(f"Request: {json.dumps(log_data)}")
        else:
            logger.info(f"Request: {json.dumps(log_data)}")

        response[REQUEST_ID_HEADER] = request.request_id
        return response


class UpdateLastActivityMiddleware:
    """
    Touches the signed-in user's last_active, at most once per
    LAST_ACTIVE_UPDATE_INTERVAL seconds.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)

        user = getattr(request, 'user', None)
        if user is None or not user.is_authenticated:
            return response

        interval = getattr(settings, 'LAST_ACTIVE_UPDATE_INTERVAL', 15 * 60)
        now = timezone.now()
        if user.last_active and (now - user.last_active).total_seconds() <= interval:
            return response

        try:
            get_user_model().objects.filter(pk=user.pk).update(last_active=now)
            user.last_active = now
        except DatabaseError as e:
            logger.warning(f"Could not update last_active for user {user.pk}: {str(e)}")

        return response
