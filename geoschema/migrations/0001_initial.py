from django.db import migrations, models

import geoschema.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Shop',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('domain', models.CharField(max_length=255, unique=True)),
                ('credits', models.PositiveIntegerField(default=geoschema.models.default_credits)),
                ('brand_voice', models.TextField(blank=True, null=True)),
                ('is_onboarded', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(('credits__gte', 0)),
                        name='shop_credits_non_negative',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='ProductState',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('shop', models.CharField(db_index=True, max_length=255)),
                ('product_id', models.CharField(max_length=255, unique=True)),
                ('content_hash', models.CharField(blank=True, max_length=64, null=True)),
                ('schema_blob', models.JSONField(blank=True, null=True)),
                ('is_synced', models.BooleanField(default=False)),
                ('last_scanned_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'constraints': [
                    models.CheckConstraint(
                        condition=models.Q(('schema_blob__isnull', True), ('content_hash__isnull', False), _connector='OR'),
                        name='product_state_blob_has_hash',
                    ),
                ],
            },
        ),
    ]
