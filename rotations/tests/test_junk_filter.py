"""
Tests for the junk filter.
"""
import pytest
from unittest.mock import patch
from django.db import DatabaseError

from rotations.models import JunkRule, Lead, LeadLog
from rotations.services import audit
from rotations.services.distribution import distribute
from rotations.services.junk_filter import (
    DEFAULT_JUNK_REASON,
    add_rule,
    classify,
    mark_lead_as_junk,
    normalize_rule_value,
)


@pytest.mark.django_db
class TestAddRule:

    def test_creates_rule(self):
        rule, created = add_rule('email', 'spam@example.com', 'Known spammer')

        assert created is True
        assert rule.rule_type == JunkRule.RuleType.EMAIL
        assert rule.value == 'spam@example.com'
        assert rule.reason == 'Known spammer'

    def test_duplicate_rule_is_noop(self):
        add_rule('email', 'a@b.com', 'x')
        rule, created = add_rule('email', 'a@b.com', 'x')

        assert created is False
        assert JunkRule.objects.count() == 1

    def test_email_value_normalized_before_insert(self):
        add_rule('email', '  A@B.com ', 'x')
        _, created = add_rule('email', 'a@b.com', 'x')

        assert created is False
        assert JunkRule.objects.get().value == 'a@b.com'

    def test_same_value_different_type_is_separate_rule(self):
        add_rule('email', '12345', None)
        _, created = add_rule('phone', '12345', None)

        assert created is True
        assert JunkRule.objects.count() == 2

    def test_empty_value_skipped(self):
        rule, created = add_rule('phone', '   ', 'x')

        assert rule is None
        assert created is False
        assert JunkRule.objects.count() == 0

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            add_rule('name', 'Bob', 'x')


@pytest.mark.django_db
class TestClassify:

    def test_email_match_is_case_insensitive(self):
        add_rule('email', 'a@b.com', 'x')

        result = classify('A@B.com', None)

        assert result.is_junk is True
        assert result.reason == 'x'
        assert result.matched_rule.value == 'a@b.com'

    def test_phone_match_is_trimmed(self):
        add_rule('phone', '91234567', None)

        result = classify(None, ' 91234567 ')

        assert result.is_junk is True
        assert result.reason == 'Matched junk phone'

    def test_phone_match_is_exact(self):
        add_rule('phone', '9123 4567', None)

        assert classify(None, '91234567').is_junk is False

    def test_rule_saved_directly_matches(self):
        JunkRule.objects.create(rule_type='email', value='Spam@Example.com')
        JunkRule.objects.create(rule_type='phone', value=' 9123 ')

        assert classify('spam@example.com', None).is_junk is True
        assert classify(None, '9123').is_junk is True

    def test_no_match(self):
        add_rule('email', 'spam@example.com', 'x')

        assert classify('good@example.com', '91234567').is_junk is False

    def test_no_contact_values_never_junk(self):
        add_rule('email', 'spam@example.com', 'x')

        result = classify(None, None)

        assert result.is_junk is False
        assert result.reason is None

    def test_lookup_failure_fails_open(self):
        with patch('rotations.services.junk_filter.JunkRule.objects.filter',
                   side_effect=DatabaseError('no such table: rotations_junkrule')):
            result = classify('spam@example.com', '123')

        assert result.is_junk is False


class TestNormalizeRuleValue:

    def test_email_lowercased(self):
        assert normalize_rule_value('email', ' A@B.Com ') == 'a@b.com'

    def test_phone_only_trimmed(self):
        assert normalize_rule_value('phone', ' +65 9123 ') == '+65 9123'

    def test_none(self):
        assert normalize_rule_value('email', None) == ''


@pytest.mark.django_db
class TestMarkLeadAsJunk:

    @pytest.fixture
    def lead(self, rotation, mock_discord):
        result = distribute(rotation.id, {
            'name': 'Spammy',
            'email': 'spam@example.com',
            'phone': '90000000',
        })
        return result.lead

    def test_marks_lead_and_learns_rules(self, lead):
        created = mark_lead_as_junk(lead.id, 'Fake number')

        lead.refresh_from_db()
        assert lead.status == Lead.Status.JUNK
        assert lead.status_reason == 'Fake number'
        assert created == [
            {'type': 'email', 'value': 'spam@example.com'},
            {'type': 'phone', 'value': '90000000'},
        ]
        assert JunkRule.objects.count() == 2

    def test_default_reason(self, lead):
        mark_lead_as_junk(lead.id)

        lead.refresh_from_db()
        assert lead.status_reason == DEFAULT_JUNK_REASON

    def test_existing_rules_not_reported(self, lead):
        add_rule('email', 'spam@example.com', 'earlier')

        created = mark_lead_as_junk(lead.id)

        assert created == [{'type': 'phone', 'value': '90000000'}]

    def test_other_leads_untouched(self, rotation, lead, mock_discord):
        other = distribute(rotation.id, {
            'name': 'Same Person',
            'email': 'spam@example.com',
            'phone': '90000000',
        }).lead

        mark_lead_as_junk(lead.id)

        other.refresh_from_db()
        assert other.status == Lead.Status.SENT

    def test_audited(self, lead):
        mark_lead_as_junk(lead.id, 'Fake number')

        entry = LeadLog.objects.get(event_type=audit.LEAD_MARKED_JUNK)
        assert entry.lead_id == lead.id
        assert entry.status == LeadLog.EventStatus.WARNING

    def test_unknown_lead(self):
        with pytest.raises(Lead.DoesNotExist):
            mark_lead_as_junk(999999)

    def test_future_leads_classified_as_junk(self, rotation, lead, mock_discord):
        mark_lead_as_junk(lead.id, 'Fake number')
        mock_discord.reset_mock()

        result = distribute(rotation.id, {'name': 'Again', 'email': 'SPAM@example.com', 'phone': '1'})

        assert result.lead.status == Lead.Status.JUNK
        assert result.lead.status_reason == 'Fake number'
        mock_discord.assert_not_called()
