from rest_framework import serializers
from grandstand.serializers import LoggedSerializer
from .gate import EngagementSignals


class EngagementSignalsSerializer(LoggedSerializer):
    dwell_seconds = serializers.FloatField(min_value=0, default=0)
    scrolled = serializers.BooleanField(default=False)
    clicked = serializers.BooleanField(default=False)

    def to_signals(self):
        return EngagementSignals(**self.validated_data)
