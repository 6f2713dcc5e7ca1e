import os
from celery import Celery
from celery.schedules import crontab

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'privacyaudit.settings')

app = Celery('privacyaudit')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

# Celery Beat schedule for unattended analyses
app.conf.beat_schedule = {
	# Daily analyses (runs at 3 AM UTC)
	'daily-domain-analyses': {
		'task': 'scanner.tasks.run_scheduled_analyses',
		'schedule': crontab(hour=3, minute=0),
		'args': ('daily',),
	},
	# Weekly analyses (runs Monday at 4 AM UTC)
	'weekly-domain-analyses': {
		'task': 'scanner.tasks.run_scheduled_analyses',
		'schedule': crontab(hour=4, minute=0, day_of_week=1),
		'args': ('weekly',),
	},
	# Monthly analyses (1st of month at 5 AM UTC)
	'monthly-domain-analyses': {
		'task': 'scanner.tasks.run_scheduled_analyses',
		'schedule': crontab(hour=5, minute=0, day_of_month=1),
		'args': ('monthly',),
	},
}
