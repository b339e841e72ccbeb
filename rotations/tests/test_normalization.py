"""
Unit tests for normalization service.
"""
from rotations.services.normalization import (
    normalize,
    normalize_additional_data,
    normalize_value,
)


class TestNormalize:
    """Tests for normalize function."""

    def test_trims_and_lowercases_email(self, valid_lead_payload):
        result = normalize(valid_lead_payload)

        assert result['email'] == 'wei.ming@example.com'
        assert result['name'] == 'Tan Wei Ming'

    def test_empty_payload(self):
        assert normalize({}) == {}
        assert normalize(None) == {}

    def test_mobile_number_becomes_phone(self, source_lead_payload):
        result = normalize(source_lead_payload)

        assert result['phone'] == '98765432'
        assert result['mobile_number'] == '98765432'

    def test_phone_wins_over_mobile_number(self):
        result = normalize({'phone': '111', 'mobile_number': '222'})

        assert result['phone'] == '111'

    def test_numeric_phone_converted_to_string(self):
        result = normalize({'phone': 91234567})

        assert result['phone'] == '91234567'

    def test_blank_fields_dropped(self):
        result = normalize({'name': 'A', 'source_url': '   '})

        assert 'source_url' not in result

    def test_unknown_fields_ignored(self):
        result = normalize({'name': 'A', 'utm_campaign': 'spring'})

        assert 'utm_campaign' not in result

    def test_additional_data_always_present(self):
        assert normalize({'name': 'A'})['additional_data'] == []


class TestNormalizeAdditionalData:

    def test_keeps_complete_pairs(self, source_lead_payload):
        result = normalize_additional_data(source_lead_payload['additional_data'])

        assert result == [
            {'key': 'Budget', 'value': '5000'},
            {'key': 'Preferred time', 'value': 'Evening'},
        ]

    def test_drops_items_missing_key_or_value(self):
        items = [
            {'key': 'Budget'},
            {'value': 'orphan'},
            {'key': '', 'value': 'x'},
            {'key': 'Area', 'value': ''},
            'not-a-dict',
            {'key': ' Area ', 'value': ' North '},
        ]

        assert normalize_additional_data(items) == [{'key': 'Area', 'value': 'North'}]

    def test_numeric_values_stringified(self):
        assert normalize_additional_data([{'key': 'Rooms', 'value': 3}]) == [{'key': 'Rooms', 'value': '3'}]

    def test_non_list_yields_empty(self):
        assert normalize_additional_data({'key': 'a', 'value': 'b'}) == []
        assert normalize_additional_data(None) == []


class TestNormalizeValue:

    def test_bool_passes_through(self):
        assert normalize_value(True) is True

    def test_float_stringified(self):
        assert normalize_value(1.5) == '1.5'
