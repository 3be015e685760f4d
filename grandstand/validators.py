from django.core.validators import RegexValidator
from django.core.exceptions import ValidationError
from django.utils.deconstruct import deconstructible
import json

# Username validator
username_validator = RegexValidator(
    regex=r'^[\w.@+-]+$',
    message=(
        'Enter a valid username. This value may contain only letters, '
        'numbers, and @/./+/-/_ characters.'
    ),
)


@deconstructible
class StringListValidator:
    """
    Validator that ensures a JSON field holds an ordered list of non-empty
    strings, e.g. the benefits of a subscription tier.
    """
    def __init__(self, max_items=None, max_length=200):
        self.max_items = max_items
        self.max_length = max_length

    def __call__(self, value):
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                raise ValidationError("Invalid JSON format.")

        if not isinstance(value, list):
            raise ValidationError("Value must be a list of strings.")

        if self.max_items and len(value) > self.max_items:
            raise ValidationError(f"At most {self.max_items} items are allowed.")

        for item in value:
            if not isinstance(item, str) or not item.strip():
                raise ValidationError("Every item must be a non-empty string.")
            if len(item) > self.max_length:
                raise ValidationError(f"Items must be at most {self.max_length} characters.")

    def __eq__(self, other):
        return (
            isinstance(other, StringListValidator)
            and self.max_items == other.max_items
            and self.max_length == other.max_length
        )
