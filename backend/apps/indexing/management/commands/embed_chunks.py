"""
Django management command to populate deferred chunk embeddings.

Usage:
    python manage.py embed_chunks
    python manage.py embed_chunks --document <uuid> --batch-size 16
"""
from django.core.management.base import BaseCommand, CommandError

from apps.core.errors import UpstreamModelError
from apps.indexing.pipeline import populate_embeddings


class Command(BaseCommand):
    help = 'Embed document chunks that have no embedding yet'

    def add_arguments(self, parser):
        parser.add_argument(
            '--document',
            dest='document_id',
            help='Only embed chunks of this document (UUID)',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=32,
            help='Chunks per embedding request (default: 32)',
        )

    def handle(self, *args, **options):
        if options['batch_size'] <= 0:
            raise CommandError('--batch-size must be positive')

        self.stdout.write('Populating embeddings...')
        try:
            count = populate_embeddings(
                document_id=options['document_id'],
                batch_size=options['batch_size'],
            )
        except UpstreamModelError as e:
            raise CommandError(f'Embedding failed: {e}')

        self.stdout.write(self.style.SUCCESS(f'Embedded {count} chunks'))
