from celery import Celery
from celery.schedules import crontab

from timecapsule.config import settings

CHECK_INTERVAL_MINUTES = 10

app = Celery('time_capsule', broker=settings.broker_url, backend=settings.result_backend,
             include=['timecapsule.tasks'])
app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)

app.conf.beat_schedule = {
    'check-capsules-every-10-minutes': {
        'task': 'timecapsule.tasks.check_capsules',
        'schedule': crontab(minute=f'*/{CHECK_INTERVAL_MINUTES}'),
    },
}
