# Generated migration for shared data contract

from django.db import migrations, models
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='AnalyticsEvent',
            fields=[
                ('id', models.BigAutoField(
                    auto_created=True,
                    primary_key=True,
                    serialize=False,
                    verbose_name='ID'
                )),
                ('event_id', models.UUIDField(
                    default=uuid.uuid4,
                    editable=False,
                    help_text='Public event identifier',
                    unique=True
                )),
                ('timestamp', models.DateTimeField(
                    default=django.utils.timezone.now,
                    help_text='When the action happened'
                )),
                ('user_id', models.CharField(
                    help_text='Id of the acting user',
                    max_length=64
                )),
                ('username', models.CharField(
                    help_text='Username of the acting user',
                    max_length=150
                )),
                ('action', models.CharField(
                    choices=[
                        ('login', 'Login'),
                        ('logout', 'Logout'),
                        ('search', 'Search'),
                        ('file_download', 'File download'),
                        ('file_preview', 'File preview'),
                        ('session_start', 'Session start'),
                        ('session_end', 'Session end'),
                        ('page_view', 'Page view'),
                        ('page_blur', 'Page blur'),
                        ('page_focus', 'Page focus'),
                        ('category_filter', 'Category filter'),
                        ('interaction', 'Interaction'),
                    ],
                    help_text='Kind of action',
                    max_length=32
                )),
                ('data', models.JSONField(
                    blank=True,
                    default=dict,
                    help_text='Action-specific payload'
                )),
                ('user_agent', models.CharField(
                    blank=True,
                    default='',
                    help_text='Client user agent',
                    max_length=255
                )),
                ('url', models.CharField(
                    blank=True,
                    default='',
                    help_text='Page the action happened on',
                    max_length=2048
                )),
                ('session_id', models.CharField(
                    blank=True,
                    default='',
                    help_text='Client session identifier',
                    max_length=64
                )),
            ],
            options={
                'verbose_name': 'Analytics Event',
                'verbose_name_plural': 'Analytics Events',
                'ordering': ['id'],
            },
        ),
        migrations.AddIndex(
            model_name='analyticsevent',
            index=models.Index(fields=['timestamp'], name='event_timestamp_idx'),
        ),
        migrations.AddIndex(
            model_name='analyticsevent',
            index=models.Index(fields=['action'], name='event_action_idx'),
        ),
        migrations.AddIndex(
            model_name='analyticsevent',
            index=models.Index(fields=['user_id'], name='event_user_idx'),
        ),
    ]
