"""
Request serializers for the card detail endpoints.

Request bodies use the camelCase keys of the public API; validated data is
keyed by model field names through ``source``.
"""

from rest_framework import serializers

REQUIRED_PASSWORD = {"required": "Password is required", "blank": "Password is required"}


class PasswordSerializer(serializers.Serializer):
    """Password re-entry for verify-password and password-bearing reveals."""

    password = serializers.CharField(
        write_only=True,
        trim_whitespace=False,
        style={"input_type": "password"},
        error_messages=REQUIRED_PASSWORD,
    )


class CardDetailsUpdateSerializer(serializers.Serializer):
    cardNumber = serializers.RegexField(
        r"^[0-9 ]{12,23}$",
        source="card_number",
        required=False,
        error_messages={"invalid": "Card number must contain 12 to 19 digits"},
    )
    cardName = serializers.CharField(source="card_name", max_length=128, required=False)
    validTil = serializers.RegexField(
        r"^(0[1-9]|1[0-2])/[0-9]{2}$",
        source="valid_til",
        required=False,
        error_messages={"invalid": "Expiry must look like MM/YY"},
    )
    cvv = serializers.RegexField(
        r"^[0-9]{3,4}$",
        required=False,
        trim_whitespace=False,
        error_messages={"invalid": "CVV must be 3 or 4 digits"},
    )
    atmPin = serializers.RegexField(
        r"^[0-9]{4,6}$",
        source="atm_pin",
        required=False,
        trim_whitespace=False,
        error_messages={"invalid": "ATM PIN must be 4 to 6 digits"},
    )

    def validate(self, attrs: dict) -> dict:
        if not attrs:
            raise serializers.ValidationError("No card details provided")
        return attrs


class VerifyCardDetailsSerializer(serializers.Serializer):
    """Compare a supplied CVV or ATM PIN with the stored one."""

    FIELD_CHOICES = ("cvv", "atmPin")

    userId = serializers.IntegerField(source="user_id")
    field = serializers.ChoiceField(choices=FIELD_CHOICES)
    value = serializers.CharField(trim_whitespace=False, max_length=128)
