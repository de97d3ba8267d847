from django.core.management.base import BaseCommand
from django.contrib.auth.models import Group, Permission

from stockroom.core.permissions import ADMINISTRATOR, MANAGER, STAFF


class Command(BaseCommand):
    help = 'Create the role groups used by the API: Administrator, Manager, Staff'

    def handle(self, *args, **options):
        groups_config = [
            {
                'name': ADMINISTRATOR,
                'description': 'Full access, including the Django admin',
            },
            {
                'name': MANAGER,
                'description': 'Master data, imports, audit log and dashboard',
            },
            {
                'name': STAFF,
                'description': 'Stock movements, purchase orders and exports only',
            },
        ]

        created_count = 0
        existing_count = 0

        for group_config in groups_config:
            group, created = Group.objects.get_or_create(name=group_config['name'])

            if created:
                self.stdout.write(self.style.SUCCESS(f'Created group: {group.name} ({group_config["description"]})'))
                created_count += 1
            else:
                self.stdout.write(f'  Group already exists: {group.name}')
                existing_count += 1

            # API access is gated by group name; only admin-site access needs model permissions
            if group.name == ADMINISTRATOR:
                group.permissions.set(Permission.objects.all())
                self.stdout.write('  Added all permissions to Administrator group')

        self.stdout.write(self.style.SUCCESS(
            f'\nCompleted: {created_count} groups created, {existing_count} groups already existed'
        ))
