"""
Management command: setup_roles
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Creates the Django auth **groups** that ``core.domain.actors`` maps to
staff roles, and optionally adds users to them.

The command is **idempotent**: safe to run multiple times.

Usage::

    python manage.py setup_roles
    python manage.py setup_roles --admin alice --psychologist bob carol
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand, CommandError

from core.domain.actors import STAFF_GROUPS, ActorRole


class Command(BaseCommand):
    help = (
        "Creates the staff groups (admin, psychologist) used for role "
        "resolution and optionally assigns users to them."
    )

    def add_arguments(self, parser):
        parser.add_argument("--admin", nargs="*", default=[], metavar="USERNAME")
        parser.add_argument("--psychologist", nargs="*", default=[], metavar="USERNAME")

    def handle(self, *args, **options):
        self.stdout.write(self.style.MIGRATE_HEADING("Staff groups"))

        groups = {}
        for group_name, role in STAFF_GROUPS:
            group, created = Group.objects.get_or_create(name=group_name)
            groups[role] = group
            action = "Created" if created else "Exists "
            self.stdout.write(self.style.SUCCESS(f"  ✔  {action} group: {group_name}"))

        User = get_user_model()
        assignments = (
            (ActorRole.ADMIN, options["admin"]),
            (ActorRole.PSYCHOLOGIST, options["psychologist"]),
        )
        for role, usernames in assignments:
            for username in usernames:
                try:
                    user = User.objects.get(username=username)
                except User.DoesNotExist:
                    raise CommandError(f"User '{username}' does not exist.")
                user.groups.add(groups[role])
                self.stdout.write(self.style.SUCCESS(f"  ✔  {username} → {role.label}"))
