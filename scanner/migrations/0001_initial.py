import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import scanner.models


class Migration(migrations.Migration):

	initial = True

	dependencies = [
		('domains', '0001_initial'),
		migrations.swappable_dependency(settings.AUTH_USER_MODEL),
	]

	operations = [
		migrations.CreateModel(
			name='Analysis',
			fields=[
				('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
				('scan_id', models.CharField(default=scanner.models.generate_scan_id, editable=False, max_length=64, unique=True)),
				('hostname', models.CharField(max_length=255)),
				('status', models.CharField(choices=[('pending', 'Pending'), ('running', 'Running'), ('completed', 'Completed'), ('failed', 'Failed'), ('cancelled', 'Cancelled')], db_index=True, default='pending', max_length=20)),
				('config', models.JSONField(default=dict)),
				('trigger_type', models.CharField(choices=[('manual', 'Manual'), ('scheduled', 'Scheduled'), ('api', 'API')], default='manual', max_length=20)),
				('attempt', models.PositiveSmallIntegerField(default=1)),
				('job_id', models.CharField(blank=True, default='', max_length=255)),
				('priority', models.PositiveSmallIntegerField(default=5)),
				('phase', models.CharField(default='initialization', max_length=20)),
				('step', models.CharField(blank=True, default='', max_length=500)),
				('percentage', models.PositiveSmallIntegerField(default=0)),
				('current_url', models.URLField(blank=True, default='', max_length=2000)),
				('urls_discovered', models.PositiveIntegerField(default=0)),
				('urls_analyzed', models.PositiveIntegerField(default=0)),
				('urls_total', models.PositiveIntegerField(default=0)),
				('errors', models.JSONField(blank=True, default=list)),
				('estimated_seconds_remaining', models.FloatField(blank=True, null=True)),
				('started_at', models.DateTimeField(blank=True, null=True)),
				('finished_at', models.DateTimeField(blank=True, null=True)),
				('cookies', models.JSONField(blank=True, default=list)),
				('scripts', models.JSONField(blank=True, default=list)),
				('technologies', models.JSONField(blank=True, default=list)),
				('consent_management', models.JSONField(blank=True, default=scanner.models.default_consent)),
				('local_storage', models.JSONField(blank=True, default=list)),
				('session_storage', models.JSONField(blank=True, default=list)),
				('network_requests', models.JSONField(blank=True, default=list)),
				('tracking_pixels', models.JSONField(blank=True, default=list)),
				('forms', models.JSONField(blank=True, default=list)),
				('iframes', models.JSONField(blank=True, default=list)),
				('discovered_urls', models.JSONField(blank=True, default=list)),
				('statistics', models.JSONField(blank=True, default=dict)),
				('changes', models.JSONField(blank=True, default=dict)),
				('recommendations', models.JSONField(blank=True, default=list)),
				('created_at', models.DateTimeField(auto_now_add=True)),
				('updated_at', models.DateTimeField(auto_now=True)),
				('domain', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='analyses', to='domains.domain')),
				('retry_of', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='retries', to='scanner.analysis')),
				('triggered_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
			],
			options={
				'ordering': ['-created_at'],
				'indexes': [
					models.Index(fields=['domain', 'status'], name='scanner_ana_domain__5c1e2b_idx'),
					models.Index(fields=['domain', '-finished_at'], name='scanner_ana_domain__a93f70_idx'),
				],
			},
		),
	]
