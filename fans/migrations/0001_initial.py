import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='FanRelationship',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('since', models.DateTimeField(auto_now_add=True)),
                ('is_following', models.BooleanField(default=False)),
                ('is_superfan', models.BooleanField(default=False)),
                ('cumulative_spend_cents', models.PositiveBigIntegerField(default=0)),
                ('last_support_at', models.DateTimeField(blank=True, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('creator', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='fan_base', to=settings.AUTH_USER_MODEL)),
                ('fan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='fan_relationships', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'indexes': [
                    models.Index(fields=['creator', 'is_following'], name='fans_creator_following_idx'),
                    models.Index(fields=['creator', 'is_superfan'], name='fans_creator_superfan_idx'),
                ],
                'unique_together': {('fan', 'creator')},
            },
        ),
    ]
