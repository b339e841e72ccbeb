"""
URL configuration for rotations app.
"""
from django.urls import path
from rotations import views

urlpatterns = [
    path('webhook/lead/<int:rotation_id>/', views.RotationLeadWebhookView.as_view(), name='lead-webhook'),
    path('webhook/lead-by-source/', views.SourceLeadWebhookView.as_view(), name='lead-by-source-webhook'),
    path('webhook/test/<int:rotation_id>/', views.WebhookTestView.as_view(), name='webhook-test'),
    path('rotations/<int:rotation_id>/launch/', views.LaunchRotationView.as_view(), name='rotation-launch'),
    path(
        'rotations/<int:rotation_id>/reorder-participants/',
        views.ReorderParticipantsView.as_view(),
        name='rotation-reorder',
    ),
    path(
        'rotations/<int:rotation_id>/participants/<int:slot_id>/toggle-pause/',
        views.ToggleParticipantPauseView.as_view(),
        name='participant-toggle-pause',
    ),
    path(
        'rotations/<int:rotation_id>/participants/<int:slot_id>/',
        views.RemoveParticipantView.as_view(),
        name='participant-remove',
    ),
    path('leads/<int:lead_id>/mark-junk/', views.MarkLeadJunkView.as_view(), name='lead-mark-junk'),
    path('logs/lead/<int:lead_id>/', views.LeadLogsView.as_view(), name='logs-lead'),
    path('logs/rotation/<int:rotation_id>/', views.RotationLogsView.as_view(), name='logs-rotation'),
    path('logs/errors/', views.ErrorLogsView.as_view(), name='logs-errors'),
    path('logs/notification-stats/', views.NotificationStatsView.as_view(), name='logs-notification-stats'),
    path(
        'logs/notification-stats/<int:rotation_id>/',
        views.NotificationStatsView.as_view(),
        name='logs-notification-stats-rotation',
    ),
]
