"""
API views for Lead Router.
"""
import logging
import uuid
from datetime import timedelta

from django.utils import timezone
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework import status
from rest_framework.exceptions import ParseError
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from rotations.authentication import WebhookTokenAuthentication
from rotations.models import Lead, ParticipantSlot
from rotations.services import audit, junk_filter, roster
from rotations.services.distribution import distribute_by_rotation, distribute_by_source
from rotations.services.errors import DistributionError, RotationNotFound
from rotations.services.rotations import get_rotation, launch_rotation

logger = logging.getLogger(__name__)


def _request_meta(request) -> dict:
    forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR', '')
    return {
        'ip_address': forwarded_for.split(',')[0].strip() or request.META.get('REMOTE_ADDR') or None,
        'user_agent': request.META.get('HTTP_USER_AGENT', ''),
        'referer': request.META.get('HTTP_REFERER', ''),
    }


def _int_param(request, name: str, default: int) -> int:
    try:
        value = int(request.query_params.get(name, default))
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


@method_decorator(csrf_exempt, name='dispatch')
class BaseLeadWebhookView(APIView):
    """
    Shared handling for the lead webhooks: bearer-token auth, correlation id,
    and translation of distribution errors into structured responses.
    """

    authentication_classes = [WebhookTokenAuthentication]
    permission_classes = []

    def distribute(self, request, payload, **kwargs):
        raise NotImplementedError

    def post(self, request, **kwargs):
        """
        Handle an incoming lead.

        Returns:
            200 OK: Lead committed and assigned
            400 Bad Request: Malformed JSON or missing/invalid fields
            404 Not Found: Unknown rotation / no rotation for the source
            409 Conflict: Rotation not launched
            503 Service Unavailable: No participant can take the lead (retry later)
            500 Internal Server Error: Storage failure (retry is safe)
        """
        # Generate correlation ID for request tracing
        correlation_id = str(uuid.uuid4())

        try:
            payload = request.data
            result = self.distribute(request, payload, **kwargs)

        except ParseError as e:
            logger.warning(f"Malformed JSON payload: {e}, correlation_id={correlation_id}")
            return Response(
                {
                    'error': 'validation_error',
                    'message': 'Malformed JSON',
                    'retryable': False,
                    'correlation_id': correlation_id,
                },
                status=status.HTTP_400_BAD_REQUEST
            )
        except DistributionError as e:
            logger.warning(f"Lead rejected: {e.code} ({e.message}), correlation_id={correlation_id}")
            return Response(
                {**e.to_dict(), 'correlation_id': correlation_id},
                status=e.http_status
            )
        except Exception as e:
            logger.error(
                f"Error processing webhook request: {e}, "
                f"correlation_id={correlation_id}",
                exc_info=True
            )
            return Response(
                {
                    'error': 'storage_error',
                    'message': 'Failed to process lead',
                    'retryable': True,
                    'correlation_id': correlation_id,
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        logger.info(
            f"Lead {result.lead.id} distributed to {result.slot.name}, "
            f"correlation_id={correlation_id}"
        )
        return Response(
            {**result.to_dict(), 'correlation_id': correlation_id},
            status=status.HTTP_200_OK
        )


class RotationLeadWebhookView(BaseLeadWebhookView):
    """
    POST /api/webhook/lead/<rotation_id>/
    Body: {name, email, phone, source_url?}
    """

    def distribute(self, request, payload, rotation_id=None):
        return distribute_by_rotation(rotation_id, payload, _request_meta(request))


class SourceLeadWebhookView(BaseLeadWebhookView):
    """
    POST /api/webhook/lead-by-source/
    Body: {name, email, mobile_number, source_url, additional_data?: [{key, value}]}
    """

    def distribute(self, request, payload):
        return distribute_by_source(payload, _request_meta(request))


class WebhookTestView(APIView):
    """GET /api/webhook/test/<rotation_id>/ - readiness of a rotation's webhook."""

    permission_classes = [IsAdminUser]

    def get(self, request, rotation_id):
        try:
            rotation = get_rotation(rotation_id)
        except RotationNotFound as e:
            return Response(e.to_dict(), status=e.http_status)

        slots = roster.list_ordered(rotation.id)
        return Response({
            'success': True,
            'rotation': {
                'id': rotation.id,
                'name': rotation.name,
                'is_launched': rotation.is_launched,
                'participant_count': len(slots),
                'available_count': sum(1 for slot in slots if slot.is_available),
                'current_position': rotation.current_position,
            },
            'webhook_url': request.build_absolute_uri(f'/api/webhook/lead/{rotation.id}/'),
            'message': 'Webhook endpoint is ready to receive leads',
        })


class LaunchRotationView(APIView):
    """POST /api/rotations/<rotation_id>/launch/"""

    permission_classes = [IsAdminUser]

    def post(self, request, rotation_id):
        try:
            rotation = launch_rotation(rotation_id)
        except RotationNotFound as e:
            return Response(e.to_dict(), status=e.http_status)
        return Response({'success': True, 'is_launched': rotation.is_launched})


class ReorderParticipantsView(APIView):
    """
    POST /api/rotations/<rotation_id>/reorder-participants/
    Body: {participant_ids: [...]} - every active slot id, in the new order.

    Reordering is allowed on launched rotations and applies to the next lead.
    """

    permission_classes = [IsAdminUser]

    def post(self, request, rotation_id):
        participant_ids = request.data.get('participant_ids')
        if not isinstance(participant_ids, list):
            return Response(
                {'error': 'validation_error', 'message': 'participant_ids must be a list', 'retryable': False},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            slots = roster.reorder(rotation_id, participant_ids)
        except DistributionError as e:
            return Response(e.to_dict(), status=e.http_status)

        return Response({
            'success': True,
            'participants': [{'id': slot.id, 'name': slot.name, 'position': slot.queue_position} for slot in slots],
        })


class ToggleParticipantPauseView(APIView):
    """
    POST /api/rotations/<rotation_id>/participants/<slot_id>/toggle-pause/
    Body: {is_paused: bool, reason?}
    """

    permission_classes = [IsAdminUser]

    def post(self, request, rotation_id, slot_id):
        is_paused = request.data.get('is_paused')
        if not isinstance(is_paused, bool):
            return Response(
                {'error': 'validation_error', 'message': 'is_paused must be a boolean value', 'retryable': False},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            slot = roster.set_paused(rotation_id, slot_id, is_paused, request.data.get('reason') or '')
        except RotationNotFound as e:
            return Response(e.to_dict(), status=e.http_status)
        except ParticipantSlot.DoesNotExist:
            return Response({'error': 'Participant not found'}, status=status.HTTP_404_NOT_FOUND)

        return Response({
            'success': True,
            'participant': {
                'id': slot.id,
                'name': slot.name,
                'is_paused': slot.is_paused,
                'pause_reason': slot.pause_reason,
            },
        })


class RemoveParticipantView(APIView):
    """DELETE /api/rotations/<rotation_id>/participants/<slot_id>/"""

    permission_classes = [IsAdminUser]

    def delete(self, request, rotation_id, slot_id):
        try:
            deleted = roster.remove_slot(rotation_id, slot_id)
        except RotationNotFound as e:
            return Response(e.to_dict(), status=e.http_status)
        except ParticipantSlot.DoesNotExist:
            return Response({'error': 'Participant not found'}, status=status.HTTP_404_NOT_FOUND)

        return Response({'success': True, 'deleted': deleted, 'deactivated': not deleted})


class MarkLeadJunkView(APIView):
    """
    POST /api/leads/<lead_id>/mark-junk/
    Body: {reason?}
    """

    permission_classes = [IsAdminUser]

    def post(self, request, lead_id):
        try:
            created_rules = junk_filter.mark_lead_as_junk(lead_id, request.data.get('reason'))
        except Lead.DoesNotExist:
            return Response({'error': 'Lead not found'}, status=status.HTTP_404_NOT_FOUND)

        return Response({
            'success': True,
            'message': 'Lead marked as junk successfully',
            'junk_rules_created': created_rules,
        })


class LeadLogsView(APIView):
    """GET /api/logs/lead/<lead_id>/"""

    permission_classes = [IsAdminUser]

    def get(self, request, lead_id):
        return Response({'logs': audit.get_lead_logs(lead_id, limit=_int_param(request, 'limit', 50))})


class RotationLogsView(APIView):
    """GET /api/logs/rotation/<rotation_id>/?limit=&hours="""

    permission_classes = [IsAdminUser]

    def get(self, request, rotation_id):
        since = None
        if 'hours' in request.query_params:
            since = timezone.now() - timedelta(hours=_int_param(request, 'hours', 24))
        logs = audit.get_rotation_logs(
            rotation_id,
            limit=_int_param(request, 'limit', 0) or None,
            since=since,
        )
        return Response({'logs': logs})


class ErrorLogsView(APIView):
    """GET /api/logs/errors/?limit="""

    permission_classes = [IsAdminUser]

    def get(self, request):
        return Response({'logs': audit.get_error_logs(limit=_int_param(request, 'limit', 0) or None)})


class NotificationStatsView(APIView):
    """GET /api/logs/notification-stats/[<rotation_id>/]?days="""

    permission_classes = [IsAdminUser]

    def get(self, request, rotation_id=None):
        stats = audit.get_notification_stats(rotation_id, days=_int_param(request, 'days', 7))
        return Response({'stats': stats})
