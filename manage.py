#!/usr/bin/env python
"""
Entry point for the mosque field reports Django project.

This script sets the default settings module for the ``django`` program and
then delegates execution to ``django.core.management.execute_from_command_line``
so that administrative commands (``runserver``, ``migrate``,
``sync_field_reports``) can be run from the command line.
"""
import os
import sys


def main() -> None:
    """Run administrative tasks."""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'mosquereports.settings')
    try:
        from django.core.management import execute_from_command_line  # type: ignore
    except ImportError as exc:  # pragma: no cover
        raise ImportError(
            "Couldn't import Django. Is it installed and available on your "
            "PYTHONPATH environment variable?"
        ) from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
