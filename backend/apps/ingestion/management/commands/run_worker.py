"""
Django management command to run the ingestion worker.

Usage:
    python manage.py run_worker
    python manage.py run_worker --once
    python manage.py run_worker --concurrency 2
"""
from django.core.management.base import BaseCommand

from apps.ingestion.worker import build_worker


class Command(BaseCommand):
    help = 'Run the document ingestion worker'

    def add_arguments(self, parser):
        parser.add_argument(
            '--once',
            action='store_true',
            help='Process one job and exit (for testing)',
        )
        parser.add_argument(
            '--concurrency',
            type=int,
            default=None,
            help='Number of jobs processed in parallel (default: WORKER_CONCURRENCY)',
        )

    def handle(self, *args, **options):
        worker = build_worker()
        if options['concurrency']:
            worker.concurrency = max(1, options['concurrency'])

        if options['once']:
            self.stdout.write('Running worker once...')
            if worker.run_once(timeout=worker.poll_interval):
                self.stdout.write(self.style.SUCCESS('Processed one job'))
            else:
                self.stdout.write('No jobs available')
        else:
            self.stdout.write('Starting worker loop...')
            worker.run()
