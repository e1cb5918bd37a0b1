"""
Migration to add HNSW index on doc_chunks.embedding for fast vector search.

HNSW (Hierarchical Navigable Small World) provides:
- Fast approximate nearest neighbor search
- No need to pre-train like IVFFlat

The index only exists on PostgreSQL; the SQLite development and test
database has no vector operators and skips it.
"""
from django.db import migrations

CREATE_INDEX_SQL = """
    CREATE INDEX IF NOT EXISTS doc_chunks_embedding_hnsw_idx
    ON doc_chunks
    USING hnsw (embedding vector_cosine_ops)
    WITH (m = 16, ef_construction = 64);
"""

DROP_INDEX_SQL = "DROP INDEX IF EXISTS doc_chunks_embedding_hnsw_idx;"


def create_hnsw_index(apps, schema_editor):
    if schema_editor.connection.vendor != 'postgresql':
        return
    schema_editor.execute(CREATE_INDEX_SQL)


def drop_hnsw_index(apps, schema_editor):
    if schema_editor.connection.vendor != 'postgresql':
        return
    schema_editor.execute(DROP_INDEX_SQL)


class Migration(migrations.Migration):

    dependencies = [
        ('indexing', '0001_initial'),
    ]

    operations = [
        # Cosine distance, matching the <=> operator used by retrieval
        migrations.RunPython(create_hnsw_index, drop_hnsw_index),
    ]
