# Generated migration for the lead rotation models

from django.conf import settings
from django.db import migrations, models
import django.core.serializers.json
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Participant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('discord_name', models.CharField(blank=True, max_length=255, null=True)),
                ('discord_webhook', models.URLField(blank=True, max_length=500, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='JunkRule',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rule_type', models.CharField(choices=[('email', 'Email'), ('phone', 'Phone')], max_length=10)),
                ('value', models.CharField(max_length=255)),
                ('reason', models.CharField(blank=True, max_length=255, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='Rotation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True, null=True)),
                ('is_launched', models.BooleanField(db_index=True, default=False)),
                ('current_position', models.PositiveIntegerField(default=0)),
                ('total_leads', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='rotations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='LeadSource',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('url', models.CharField(db_index=True, max_length=500)),
                ('domain', models.CharField(db_index=True, max_length=255)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('rotation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lead_sources', to='rotations.rotation')),
            ],
            options={
                'ordering': ['rotation', 'id'],
            },
        ),
        migrations.CreateModel(
            name='ParticipantSlot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('discord_name', models.CharField(blank=True, max_length=255, null=True)),
                ('discord_webhook', models.CharField(blank=True, max_length=500, null=True)),
                ('lead_limit', models.PositiveIntegerField(default=15)),
                ('leads_received', models.PositiveIntegerField(default=0)),
                ('queue_position', models.PositiveIntegerField()),
                ('is_external', models.BooleanField(default=False)),
                ('is_active', models.BooleanField(default=True)),
                ('is_paused', models.BooleanField(default=False)),
                ('pause_reason', models.CharField(blank=True, max_length=255, null=True)),
                ('paused_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('participant', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='slots', to='rotations.participant')),
                ('rotation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='slots', to='rotations.rotation')),
            ],
            options={
                'ordering': ['rotation', 'queue_position'],
            },
        ),
        migrations.CreateModel(
            name='Lead',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(blank=True, max_length=255, null=True)),
                ('phone', models.CharField(blank=True, max_length=50, null=True)),
                ('email', models.CharField(blank=True, max_length=255, null=True)),
                ('source_url', models.CharField(blank=True, max_length=500, null=True)),
                ('source_domain', models.CharField(blank=True, max_length=255, null=True)),
                ('status', models.CharField(choices=[('sent', 'Sent'), ('junk', 'Junk')], db_index=True, default='sent', max_length=20)),
                ('status_reason', models.CharField(blank=True, max_length=255, null=True)),
                ('received_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('rotation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='leads', to='rotations.rotation')),
                ('slot', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='leads', to='rotations.participantslot')),
            ],
            options={
                'ordering': ['-received_at'],
            },
        ),
        migrations.CreateModel(
            name='LeadAdditionalData',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('field_key', models.CharField(max_length=255)),
                ('field_value', models.TextField()),
                ('lead', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='additional_data', to='rotations.lead')),
            ],
            options={
                'ordering': ['lead', 'id'],
            },
        ),
        migrations.CreateModel(
            name='LeadLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_type', models.CharField(db_index=True, max_length=50)),
                ('status', models.CharField(choices=[('success', 'Success'), ('failure', 'Failure'), ('info', 'Info'), ('warning', 'Warning')], db_index=True, default='info', max_length=10)),
                ('message', models.TextField()),
                ('details', models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True)),
                ('error_details', models.TextField(blank=True, null=True)),
                ('source_url', models.CharField(blank=True, max_length=500, null=True)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.CharField(blank=True, max_length=500, null=True)),
                ('response_time_ms', models.PositiveIntegerField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('lead', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='logs', to='rotations.lead')),
                ('rotation', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='logs', to='rotations.rotation')),
                ('slot', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='logs', to='rotations.participantslot')),
            ],
            options={
                'ordering': ['-created_at', '-id'],
            },
        ),
        migrations.AddConstraint(
            model_name='participantslot',
            constraint=models.UniqueConstraint(condition=models.Q(('is_active', True)), fields=('rotation', 'queue_position'), name='unique_active_slot_position'),
        ),
        migrations.AddConstraint(
            model_name='junkrule',
            constraint=models.UniqueConstraint(fields=('rule_type', 'value'), name='unique_junk_rule'),
        ),
        migrations.AddIndex(
            model_name='lead',
            index=models.Index(fields=['rotation', 'received_at'], name='lead_rotation_received_idx'),
        ),
        migrations.AddIndex(
            model_name='leadlog',
            index=models.Index(fields=['rotation', 'created_at'], name='leadlog_rotation_created_idx'),
        ),
        migrations.AddIndex(
            model_name='leadlog',
            index=models.Index(fields=['event_type', 'created_at'], name='leadlog_event_created_idx'),
        ),
    ]
