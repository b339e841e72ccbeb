"""
Tests for the distribution transaction and its two entry points.
"""
import threading

import httpx
import pytest
from unittest.mock import Mock, patch
from django.db import DatabaseError, connection

from rotations.models import Lead, LeadAdditionalData, LeadLog, ParticipantSlot, Rotation
from rotations.services import audit
from rotations.services.distribution import (
    distribute,
    distribute_by_rotation,
    distribute_by_source,
)
from rotations.services.errors import (
    EmptyRoster,
    LeadValidationError,
    NoAvailableParticipant,
    RotationNotFound,
    RotationNotLaunched,
    StorageError,
)
from rotations.services.junk_filter import add_rule
from rotations.services.roster import list_ordered, set_paused
from rotations.services.rotations import create_rotation


def lead_data(n=0):
    return {'name': f'Lead {n}', 'email': f'lead{n}@example.com', 'phone': f'9100000{n}'}


def events_for(lead):
    return list(
        LeadLog.objects.filter(lead=lead).order_by('id').values_list('event_type', flat=True)
    )


@pytest.mark.django_db
class TestDistributeHappyPath:

    def test_first_lead_goes_to_first_slot(self, rotation, mock_discord):
        result = distribute(rotation.id, lead_data())

        rotation.refresh_from_db()
        alice = list_ordered(rotation.id)[0]
        assert result.slot.id == alice.id
        assert result.position == 0
        assert result.next_position == 1
        assert rotation.current_position == 1
        assert rotation.total_leads == 1
        assert alice.leads_received == 1
        assert Lead.objects.get().slot_id == alice.id

    def test_lead_fields_stored(self, rotation, mock_discord):
        data = {**lead_data(), 'source_url': 'https://promo.example.com/landing'}

        lead = distribute(rotation.id, data).lead

        lead.refresh_from_db()
        assert lead.status == Lead.Status.SENT
        assert lead.status_reason is None
        assert lead.email == 'lead0@example.com'
        assert lead.source_domain == 'promo.example.com'
        assert lead.rotation_id == rotation.id

    def test_each_slot_once_per_cycle(self, rotation, mock_discord):
        assigned = [distribute(rotation.id, lead_data(n)).slot.name for n in range(6)]

        assert assigned == ['Alice', 'Bob', 'Carol', 'Alice', 'Bob', 'Carol']
        rotation.refresh_from_db()
        assert rotation.current_position == 0
        assert rotation.total_leads == 6

    def test_cycle_from_any_pointer(self, rotation, mock_discord):
        Rotation.objects.filter(id=rotation.id).update(current_position=2)

        assigned = [distribute(rotation.id, lead_data(n)).slot.name for n in range(3)]

        assert assigned == ['Carol', 'Alice', 'Bob']

    def test_notification_sent(self, rotation, mock_discord):
        result = distribute(rotation.id, lead_data())

        assert result.notified is True
        mock_discord.assert_called_once()
        assert mock_discord.call_args.args[0] == 'https://discord.example/api/webhooks/alice'
        assert events_for(result.lead) == [
            audit.LEAD_ASSIGNED,
            audit.NOTIFICATION_ATTEMPT,
            audit.NOTIFICATION_SUCCESS,
        ]

    def test_to_dict(self, rotation, mock_discord):
        result = distribute(rotation.id, lead_data())

        data = result.to_dict()

        assert data['success'] is True
        assert data['lead_id'] == result.lead.id
        assert data['status'] == 'sent'
        assert data['assigned_to'] == 'Alice'
        assert data['participant_id'] == result.slot.id
        assert data['rotation'] == {'id': rotation.id, 'name': rotation.name, 'new_position': 1}
        assert data['discord_notified'] is True
        assert data['notification']['success'] is True


@pytest.mark.django_db
class TestDistributePausing:

    def test_paused_slot_at_pointer_is_skipped(self, rotation, mock_discord):
        bob = list_ordered(rotation.id)[1]
        Rotation.objects.filter(id=rotation.id).update(current_position=1)
        set_paused(rotation.id, bob.id, True)

        result = distribute(rotation.id, lead_data())

        rotation.refresh_from_db()
        assert result.slot.name == 'Carol'
        assert result.position == 2
        assert rotation.current_position == 0

    def test_skip_wraps_around(self, rotation, mock_discord):
        carol = list_ordered(rotation.id)[2]
        Rotation.objects.filter(id=rotation.id).update(current_position=2)
        set_paused(rotation.id, carol.id, True)

        result = distribute(rotation.id, lead_data())

        rotation.refresh_from_db()
        assert result.slot.name == 'Alice'
        assert rotation.current_position == 1

    def test_all_paused_changes_nothing(self, rotation, mock_discord):
        Rotation.objects.filter(id=rotation.id).update(current_position=1)
        for slot in list_ordered(rotation.id):
            set_paused(rotation.id, slot.id, True)

        with pytest.raises(NoAvailableParticipant) as exc_info:
            distribute(rotation.id, lead_data())

        rotation.refresh_from_db()
        assert exc_info.value.retryable is True
        assert Lead.objects.count() == 0
        assert rotation.current_position == 1
        assert rotation.total_leads == 0
        assert not ParticipantSlot.objects.filter(leads_received__gt=0).exists()
        mock_discord.assert_not_called()

    def test_inactive_slot_never_selected(self, rotation, mock_discord):
        bob = list_ordered(rotation.id)[1]
        ParticipantSlot.objects.filter(id=bob.id).update(is_active=False)

        assigned = [distribute(rotation.id, lead_data(n)).slot.name for n in range(3)]

        assert 'Bob' not in assigned


@pytest.mark.django_db
class TestDistributeRejections:

    def test_unknown_rotation(self, db):
        with pytest.raises(RotationNotFound):
            distribute(999999, lead_data())

        assert LeadLog.objects.count() == 0

    def test_not_launched(self, make_rotation, mock_discord):
        rotation = make_rotation(launched=False)

        with pytest.raises(RotationNotLaunched):
            distribute(rotation.id, lead_data())

        assert Lead.objects.count() == 0
        error = LeadLog.objects.get(event_type=audit.ERROR)
        assert error.rotation_id == rotation.id
        assert error.details['context']['code'] == 'rotation_not_launched'

    def test_empty_roster(self, make_rotation):
        rotation = make_rotation(names=())

        with pytest.raises(EmptyRoster):
            distribute(rotation.id, lead_data())

        assert Lead.objects.count() == 0

    def test_storage_failure_rolls_back(self, rotation, mock_discord):
        with patch('rotations.services.distribution.LeadAdditionalData.objects.bulk_create',
                   side_effect=DatabaseError('disk full')):
            with pytest.raises(StorageError) as exc_info:
                distribute(rotation.id, lead_data(), [{'key': 'Budget', 'value': '1'}])

        rotation.refresh_from_db()
        assert exc_info.value.retryable is True
        assert exc_info.value.http_status == 500
        assert Lead.objects.count() == 0
        assert rotation.current_position == 0
        assert rotation.total_leads == 0
        mock_discord.assert_not_called()


@pytest.mark.django_db
class TestDistributeJunk:

    def test_junk_lead_stored_but_not_notified(self, rotation, mock_discord):
        add_rule('email', 'lead0@example.com', 'Repeat spammer')

        result = distribute(rotation.id, lead_data())

        assert result.lead.status == Lead.Status.JUNK
        assert result.lead.status_reason == 'Repeat spammer'
        mock_discord.assert_not_called()
        assert events_for(result.lead) == [audit.LEAD_ASSIGNED, audit.NOTIFICATION_SKIPPED]
        skipped = LeadLog.objects.get(event_type=audit.NOTIFICATION_SKIPPED)
        assert skipped.status == LeadLog.EventStatus.INFO

    def test_junk_lead_still_consumes_turn(self, rotation, mock_discord):
        add_rule('phone', '91000000', None)

        junk = distribute(rotation.id, lead_data(0))
        regular = distribute(rotation.id, lead_data(1))

        rotation.refresh_from_db()
        assert junk.slot.name == 'Alice'
        assert regular.slot.name == 'Bob'
        assert rotation.current_position == 2

    def test_junk_to_dict(self, rotation, mock_discord):
        add_rule('email', 'lead0@example.com', 'x')

        data = distribute(rotation.id, lead_data()).to_dict()

        assert data['status'] == 'junk'
        assert data['discord_notified'] is False
        assert data['notification']['success'] is False


@pytest.mark.django_db
class TestDistributeNotificationFailures:

    def test_network_error_keeps_lead(self, rotation, monkeypatch):
        post = Mock(side_effect=httpx.ConnectError('Connection refused'))
        monkeypatch.setattr('rotations.services.notifications.httpx.post', post)

        result = distribute(rotation.id, lead_data())

        rotation.refresh_from_db()
        assert result.notified is False
        assert result.notification.reason == 'Connection refused'
        assert Lead.objects.filter(id=result.lead.id).exists()
        assert rotation.current_position == 1
        assert audit.NOTIFICATION_FAILURE in events_for(result.lead)

    def test_malformed_webhook_url_keeps_lead(self, rotation):
        slot = list_ordered(rotation.id)[0]
        ParticipantSlot.objects.filter(id=slot.id).update(
            discord_webhook='https://discord.example/api/webhooks/\x01abc'
        )

        result = distribute(rotation.id, lead_data())

        assert result.notified is False
        assert audit.NOTIFICATION_FAILURE in events_for(result.lead)
        assert audit.ERROR not in events_for(result.lead)

    def test_non_2xx_keeps_lead(self, rotation, monkeypatch):
        response = Mock(status_code=429, text='rate limited')
        monkeypatch.setattr('rotations.services.notifications.httpx.post', Mock(return_value=response))

        result = distribute(rotation.id, lead_data())

        assert result.notification.reason == 'HTTP 429: rate limited'
        assert Lead.objects.count() == 1

    def test_unexpected_notifier_error_is_contained(self, rotation):
        with patch('rotations.services.distribution.notify', side_effect=RuntimeError('boom')):
            result = distribute(rotation.id, lead_data())

        assert result.notified is False
        assert result.notification.reason == 'boom'
        assert Lead.objects.count() == 1
        assert LeadLog.objects.filter(event_type=audit.ERROR, lead=result.lead).exists()

    def test_slot_without_webhook(self, db, mock_discord):
        rotation = create_rotation('No hooks', participants=[{'name': 'Quiet'}])
        Rotation.objects.filter(id=rotation.id).update(is_launched=True)

        result = distribute(rotation.id, lead_data())

        assert result.notification.reason == 'No webhook configured'
        mock_discord.assert_not_called()


@pytest.mark.django_db
class TestDistributeAsyncNotification:

    def test_notification_queued(self, rotation, settings, mock_discord):
        settings.NOTIFICATIONS_ASYNC = True

        with patch('rotations.services.distribution.send_lead_notification') as mock_task:
            result = distribute(rotation.id, lead_data())

        mock_task.delay.assert_called_once_with(result.lead.id)
        mock_discord.assert_not_called()
        assert result.to_dict()['notification'] == {'queued': True}

    def test_queue_failure_falls_back_to_inline(self, rotation, settings, mock_discord):
        settings.NOTIFICATIONS_ASYNC = True

        with patch('rotations.services.distribution.send_lead_notification') as mock_task:
            mock_task.delay.side_effect = ConnectionError('broker down')
            result = distribute(rotation.id, lead_data())

        assert result.notification_queued is False
        assert result.notified is True
        mock_discord.assert_called_once()

    def test_junk_never_queued(self, rotation, settings, mock_discord):
        settings.NOTIFICATIONS_ASYNC = True
        add_rule('email', 'lead0@example.com', 'x')

        with patch('rotations.services.distribution.send_lead_notification') as mock_task:
            distribute(rotation.id, lead_data())

        mock_task.delay.assert_not_called()


@pytest.mark.django_db
class TestDistributeByRotation:

    def test_valid_payload(self, rotation, valid_lead_payload, mock_discord):
        result = distribute_by_rotation(rotation.id, valid_lead_payload, {'ip_address': '10.0.0.1'})

        assert result.lead.email == 'wei.ming@example.com'
        received = LeadLog.objects.get(event_type=audit.WEBHOOK_RECEIVED)
        assert received.rotation_id == rotation.id
        assert received.ip_address == '10.0.0.1'
        assert received.lead_id is None

    def test_missing_fields(self, rotation):
        with pytest.raises(LeadValidationError) as exc_info:
            distribute_by_rotation(rotation.id, {'name': 'A'})

        assert exc_info.value.missing_fields == ['email', 'phone']
        assert 'email, phone' in exc_info.value.message
        assert Lead.objects.count() == 0

    def test_invalid_email(self, rotation, valid_lead_payload):
        valid_lead_payload['email'] = 'nope'

        with pytest.raises(LeadValidationError) as exc_info:
            distribute_by_rotation(rotation.id, valid_lead_payload)

        assert exc_info.value.invalid_fields == ['email']

    def test_referer_fallback_for_source_url(self, rotation, valid_lead_payload, mock_discord):
        del valid_lead_payload['source_url']

        result = distribute_by_rotation(
            rotation.id, valid_lead_payload, {'referer': 'https://ads.example.com/form'}
        )

        assert result.lead.source_url == 'https://ads.example.com/form'
        assert result.lead.source_domain == 'ads.example.com'

    def test_unknown_rotation_not_audited(self, db, valid_lead_payload):
        with pytest.raises(RotationNotFound):
            distribute_by_rotation(999999, valid_lead_payload)

        assert LeadLog.objects.count() == 0


@pytest.mark.django_db
class TestDistributeBySource:

    @pytest.fixture
    def sourced_rotation(self, make_rotation):
        return make_rotation(lead_sources=['https://promo.example.com/landing'])

    def test_resolves_rotation_and_stores_additional_data(self, sourced_rotation, source_lead_payload, mock_discord):
        result = distribute_by_source(source_lead_payload)

        assert result.rotation.id == sourced_rotation.id
        assert result.lead.phone == '98765432'
        rows = LeadAdditionalData.objects.filter(lead=result.lead).order_by('id')
        assert [(row.field_key, row.field_value) for row in rows] == [
            ('Budget', '5000'),
            ('Preferred time', 'Evening'),
        ]

    def test_additional_data_in_notification(self, sourced_rotation, source_lead_payload, mock_discord):
        distribute_by_source(source_lead_payload)

        content = mock_discord.call_args.kwargs['json']['content']
        assert '- Budget: 5000' in content
        assert '- Preferred time: Evening' in content

    def test_domain_fallback(self, sourced_rotation, source_lead_payload, mock_discord):
        source_lead_payload['source_url'] = 'https://promo.example.com/other-page'

        assert distribute_by_source(source_lead_payload).rotation.id == sourced_rotation.id

    def test_no_matching_rotation(self, db, source_lead_payload):
        with pytest.raises(RotationNotFound) as exc_info:
            distribute_by_source(source_lead_payload)

        assert exc_info.value.message == 'No active round robin found for this source URL'
        assert exc_info.value.to_dict()['source_url'] == 'https://promo.example.com/landing'

    def test_validation_failure_audited_against_rotation(self, sourced_rotation, source_lead_payload):
        del source_lead_payload['mobile_number']

        with pytest.raises(LeadValidationError):
            distribute_by_source(source_lead_payload)

        failure = LeadLog.objects.get(event_type=audit.VALIDATION_FAILED)
        assert failure.rotation_id == sourced_rotation.id
        assert failure.lead_id is None
        assert failure.details['missing_fields'] == ['mobile_number']
        assert Lead.objects.count() == 0

    def test_validation_failure_without_rotation_not_audited(self, db, source_lead_payload):
        del source_lead_payload['mobile_number']

        with pytest.raises(LeadValidationError):
            distribute_by_source(source_lead_payload)

        assert LeadLog.objects.count() == 0


@pytest.mark.django_db
class TestRotationRowLock:

    def test_distribution_locks_rotation_row(self, rotation, mock_discord):
        with patch.object(
            Rotation.objects, 'select_for_update', wraps=Rotation.objects.select_for_update
        ) as mock_lock:
            distribute(rotation.id, lead_data())

        mock_lock.assert_called_once_with()

    def test_lock_taken_inside_transaction(self, rotation, mock_discord):
        in_transaction = []
        select_for_update = Rotation.objects.select_for_update

        def locking_queryset(*args, **kwargs):
            in_transaction.append(connection.in_atomic_block)
            return select_for_update(*args, **kwargs)

        with patch.object(Rotation.objects, 'select_for_update', side_effect=locking_queryset):
            distribute(rotation.id, lead_data())

        assert in_transaction == [True]

    def test_rejected_lead_still_takes_lock(self, make_rotation):
        rotation = make_rotation(launched=False)

        with patch.object(
            Rotation.objects, 'select_for_update', wraps=Rotation.objects.select_for_update
        ) as mock_lock:
            with pytest.raises(RotationNotLaunched):
                distribute(rotation.id, lead_data())

        mock_lock.assert_called_once_with()


@pytest.mark.django_db(transaction=True)
class TestConcurrentDistribution:

    @pytest.mark.skipif(
        connection.vendor == 'sqlite',
        reason='SQLite has no row-level locks'
    )
    def test_two_concurrent_leads_take_consecutive_positions(self, make_rotation, mock_discord):
        rotation = make_rotation(names=('Alice', 'Bob'))
        barrier = threading.Barrier(2)
        positions = []
        errors = []

        def worker(n):
            try:
                barrier.wait()
                positions.append(distribute(rotation.id, lead_data(n)).position)
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        rotation.refresh_from_db()
        assert errors == []
        assert sorted(positions) == [0, 1]
        assert rotation.current_position == 0
        assert rotation.total_leads == 2

    def test_sequential_leads_on_two_slots(self, make_rotation, mock_discord):
        rotation = make_rotation(names=('Alice', 'Bob'))

        positions = [distribute(rotation.id, lead_data(n)).position for n in range(2)]

        rotation.refresh_from_db()
        assert positions == [0, 1]
        assert rotation.current_position == 0
