# Generated migration for the DocumentChunk model

from django.db import migrations, models
import django.db.models.deletion
import pgvector.django


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('docs', '0001_initial'),
    ]

    operations = [
        pgvector.django.VectorExtension(),
        migrations.CreateModel(
            name='DocumentChunk',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('chunk_index', models.PositiveIntegerField(help_text='Index of this chunk within the document (0-based)')),
                ('content', models.TextField(help_text='The text content of this chunk')),
                ('token_count', models.PositiveIntegerField(default=0, help_text='Estimated token count (characters / 4)')),
                ('embedding', pgvector.django.VectorField(blank=True, dimensions=768, help_text='Vector embedding, NULL until populated', null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('document', models.ForeignKey(help_text='The source document', on_delete=django.db.models.deletion.CASCADE, related_name='chunks', to='docs.document')),
            ],
            options={
                'db_table': 'doc_chunks',
                'ordering': ['document', 'chunk_index'],
            },
        ),
        migrations.AddConstraint(
            model_name='documentchunk',
            constraint=models.UniqueConstraint(fields=('document', 'chunk_index'), name='unique_document_chunk'),
        ),
    ]
