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
            name='AnalyticsEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event', models.CharField(choices=[('PAGE_VIEW', 'Page view'), ('PRODUCT_VIEW', 'Product view'), ('ADD_TO_CART', 'Add to cart'), ('REMOVE_FROM_CART', 'Remove from cart'), ('BEGIN_CHECKOUT', 'Begin checkout'), ('PURCHASE', 'Purchase'), ('SEARCH', 'Search')], db_index=True, max_length=32)),
                ('session_id', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('metadata', models.JSONField(blank=True, default=dict)),
                ('device_type', models.CharField(choices=[('mobile', 'Mobile'), ('tablet', 'Tablet'), ('desktop', 'Desktop'), ('other', 'Other')], default='other', max_length=16)),
                ('utm_source', models.CharField(blank=True, default='', max_length=128)),
                ('utm_medium', models.CharField(blank=True, default='', max_length=128)),
                ('utm_campaign', models.CharField(blank=True, default='', max_length=128)),
                ('country', models.CharField(blank=True, default='', max_length=8)),
                ('region', models.CharField(blank=True, default='', max_length=32)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='analytics_events', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ('-created_at',),
            },
        ),
    ]
