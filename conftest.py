import os
import sys
import pytest
import django

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lead_router.settings')

TEST_WEBHOOK_TOKEN = 'test-webhook-token'


def pytest_configure(config):
    """Configure Django settings for pytest."""
    from django.conf import settings

    # Only configure if not already configured
    if not settings.configured:
        settings.configure(
            DEBUG=True,
            DATABASES={
                'default': {
                    'ENGINE': 'django.db.backends.sqlite3',
                    'NAME': ':memory:',
                }
            },
            INSTALLED_APPS=[
                'django.contrib.admin',
                'django.contrib.contenttypes',
                'django.contrib.auth',
                'django.contrib.sessions',
                'django.contrib.messages',
                'rest_framework',
                'rotations',
            ],
            ROOT_URLCONF='lead_router.urls',
            SECRET_KEY='test-secret-key',
            USE_TZ=True,
            DEFAULT_AUTO_FIELD='django.db.models.BigAutoField',
            # Celery settings for tests
            CELERY_BROKER_URL='memory://',
            CELERY_RESULT_BACKEND='cache+memory://',
            CELERY_TASK_ALWAYS_EAGER=True,
            CELERY_TASK_EAGER_PROPAGATES=True,
            # Webhook and notification settings
            WEBHOOK_BEARER_TOKEN=TEST_WEBHOOK_TOKEN,
            NOTIFICATION_TIMEOUT=10.0,
            NOTIFICATIONS_ASYNC=False,
            WHATSAPP_COUNTRY_CODE='65',
            DEFAULT_LEAD_LIMIT=15,
            AUDIT_LOG_LIMIT=100,
            ERROR_LOG_LIMIT=50,
        )

        django.setup()
    else:
        # Override database settings for tests
        settings.DATABASES = {
            'default': {
                'ENGINE': 'django.db.backends.sqlite3',
                'NAME': ':memory:',
            }
        }
        settings.WEBHOOK_BEARER_TOKEN = TEST_WEBHOOK_TOKEN
        settings.NOTIFICATIONS_ASYNC = False
        settings.CELERY_TASK_ALWAYS_EAGER = True
        settings.CELERY_TASK_EAGER_PROPAGATES = True


@pytest.fixture
def auth_header():
    """Authorization header accepted by the lead webhooks."""
    return {'HTTP_AUTHORIZATION': f'Bearer {TEST_WEBHOOK_TOKEN}'}


@pytest.fixture
def make_rotation(db):
    """Factory for a rotation with a roster of named slots."""
    from rotations.services.rotations import create_rotation, launch_rotation

    def _make(names=('Alice', 'Bob', 'Carol'), launched=True, lead_sources=(), **kwargs):
        participants = [
            {'name': name, 'discord_webhook': f'https://discord.example/api/webhooks/{name.lower()}'}
            for name in names
        ]
        rotation = create_rotation(
            kwargs.pop('name', 'Test Rotation'),
            participants=participants,
            lead_sources=lead_sources,
            **kwargs
        )
        if launched:
            rotation = launch_rotation(rotation.id)
        return rotation

    return _make


@pytest.fixture
def rotation(make_rotation):
    """A launched rotation with three participants: Alice, Bob, Carol."""
    return make_rotation()


@pytest.fixture
def valid_lead_payload():
    """Return a valid payload for the by-rotation webhook."""
    return {
        'name': 'Tan Wei Ming',
        'email': 'Wei.Ming@Example.com ',
        'phone': '91234567',
        'source_url': 'https://promo.example.com/landing',
    }


@pytest.fixture
def source_lead_payload():
    """Return a valid payload for the by-source webhook."""
    return {
        'name': 'Nur Aisyah',
        'email': 'aisyah@example.com',
        'mobile_number': '98765432',
        'source_url': 'https://promo.example.com/landing',
        'additional_data': [
            {'key': 'Budget', 'value': '5000'},
            {'key': 'Preferred time', 'value': 'Evening'},
        ],
    }


@pytest.fixture
def staff_client(db):
    """DRF client logged in as a staff user."""
    from django.contrib.auth import get_user_model
    from rest_framework.test import APIClient

    user = get_user_model().objects.create_user(
        username='admin', password='admin-pass', is_staff=True
    )
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def mock_discord(monkeypatch):
    """Replace outbound webhook calls with a recording stub answering 204."""
    from unittest.mock import Mock

    response = Mock()
    response.status_code = 204
    response.text = ''
    post = Mock(return_value=response)
    monkeypatch.setattr('rotations.services.notifications.httpx.post', post)
    return post
