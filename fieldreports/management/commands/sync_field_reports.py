"""Refresh the local snapshots of the record store's sheets.

This management command downloads the mosque and day reference lists and
the rows of every record sheet into the JSON snapshots maintained by
``fieldreports.services.record_cache``.  Pages then read from those snapshots.

Usage::

    python manage.py sync_field_reports

The ``--kind`` option limits the run to a single record kind, while
``--loop`` keeps the command running, sleeping ``--interval`` seconds between
iterations.
"""

from __future__ import annotations

import time
from typing import List

from django.core.management.base import BaseCommand, CommandError

from fieldreports.records import RecordKind
from fieldreports.services.record_cache import RecordCacheError, refresh_reference, refresh_snapshot
from fieldreports.services.record_store import RecordStoreError, get_record_store


class Command(BaseCommand):
    help = "Refresh cached sheet snapshots from the record store."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            '--kind',
            choices=RecordKind.values,
            help='Synchronise only the specified record kind',
        )
        parser.add_argument(
            '--loop',
            action='store_true',
            help='Keep synchronising until interrupted',
        )
        parser.add_argument(
            '--interval',
            type=int,
            default=600,
            help='Seconds to sleep between iterations when looping (default 600)',
        )

    def handle(self, *args, **options) -> None:
        kind = options.get('kind')
        kinds: List[RecordKind] = [RecordKind(kind)] if kind else list(RecordKind)
        loop: bool = options.get('loop', False)

        try:
            store = get_record_store()
        except RecordStoreError as exc:
            raise CommandError(str(exc))

        def run_sync() -> int:
            failures = 0
            try:
                reference = refresh_reference(store)
                self.stdout.write(
                    f"Reference data: {len(reference.mosques)} mosques, {len(reference.days)} days."
                )
            except (RecordStoreError, RecordCacheError) as exc:
                failures += 1
                self.stderr.write(f"Error synchronising reference data: {exc}")

            for record_kind in kinds:
                self.stdout.write(f"Refreshing {record_kind.value} ({record_kind.sheet})...")
                try:
                    result = refresh_snapshot(record_kind, store)
                except (RecordStoreError, RecordCacheError) as exc:
                    failures += 1
                    self.stderr.write(f"Error synchronising {record_kind.value}: {exc}")
                    continue
                self.stdout.write(
                    f"Cached {result.total} records (added {result.added}, updated {result.updated})."
                )
            if failures:
                self.stdout.write(self.style.WARNING(f'Snapshot refresh finished with {failures} error(s).'))
            else:
                self.stdout.write(self.style.SUCCESS('Snapshot refresh complete.'))
            return failures

        if loop:
            while True:
                run_sync()
                time.sleep(max(options['interval'], 1))
        elif run_sync():
            raise CommandError('One or more sheets could not be synchronised.')
