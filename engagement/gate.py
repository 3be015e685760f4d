from dataclasses import dataclass

from django.conf import settings

DEFAULT_MIN_DWELL_SECONDS = 5


@dataclass(frozen=True)
class EngagementSignals:
    """Client-reported engagement on a profile page.

    dwell_seconds only counts time the page was visible; the client pauses
    the clock while the page is hidden.
    """
    dwell_seconds: float = 0
    scrolled: bool = False
    clicked: bool = False


def min_dwell_seconds():
    return getattr(settings, 'ENGAGEMENT', {}).get('MIN_DWELL_SECONDS', DEFAULT_MIN_DWELL_SECONDS)


def is_engaged(signals):
    """Enough visible dwell time and at least one scroll or click."""
    return signals.dwell_seconds >= min_dwell_seconds() and (signals.scrolled or signals.clicked)
