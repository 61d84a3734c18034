from django.db import migrations, models
import django.db.models.deletion


SOURCE_TYPE_CHOICES = [
    ('RAW_INCIDENT', 'Raw incident'),
    ('VERIFIED_DIAGNOSIS', 'Verified diagnosis'),
    ('RESOLVED_INCIDENT', 'Resolved incident'),
    ('OFFICIAL_RUNBOOK', 'Official runbook'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('incidents', '0001_initial'),
        ('runbooks', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='IncidentEmbedding',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source_text', models.TextField(help_text='Exact text that was embedded, used for result snippets')),
                ('vector', models.BinaryField(help_text='Packed little-endian float32 components')),
                ('source_type', models.CharField(choices=SOURCE_TYPE_CHOICES, max_length=32)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('incident', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='embeddings', to='incidents.incident')),
            ],
            options={
                'db_table': 'incident_embeddings',
                'ordering': ['id'],
            },
        ),
        migrations.CreateModel(
            name='RunbookEmbedding',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source_text', models.TextField(help_text='Exact text that was embedded, used for result snippets')),
                ('vector', models.BinaryField(help_text='Packed little-endian float32 components')),
                ('source_type', models.CharField(choices=SOURCE_TYPE_CHOICES, max_length=32)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('fragment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='embeddings', to='runbooks.runbookfragment')),
            ],
            options={
                'db_table': 'runbook_embeddings',
                'ordering': ['id'],
            },
        ),
    ]
