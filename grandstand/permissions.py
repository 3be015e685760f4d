from rest_framework import permissions
import logging

logger = logging.getLogger('grandstand')

class IsParticipant(permissions.BasePermission):
    """
    Allows access only to users named on one of the object's participant fields,
    e.g. the payer or the payee of a charge.
    """
    participant_fields = ('payer', 'payee')

    def has_object_permission(self, request, view, obj):
        fields = getattr(view, 'participant_fields', self.participant_fields)
        for field in fields:
            if not hasattr(obj, field):
                logger.warning(f"Participant field '{field}' not found on {obj.__class__.__name__}")
                continue
            if getattr(obj, field) == request.user:
                return True
        return False
