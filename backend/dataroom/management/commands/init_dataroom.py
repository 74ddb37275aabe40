"""
Management command to initialize the dataroom data files.

Usage:
    python manage.py init_dataroom
    python manage.py init_dataroom --admin-username admin --admin-password secret
    python manage.py init_dataroom --purge-orphans [--dry-run]
    python manage.py init_dataroom --reset-analytics
"""

from django.core.management.base import BaseCommand, CommandError

from dataroom.exceptions import DataroomError
from dataroom.services import EventLog, InventoryStore, UserDirectory
from dataroom.services.blob_store import get_upload_dir
from dataroom.services.inventory_store import get_inventory_path
from dataroom.services.users import get_users_path
from dataroom.tasks import check_inventory_blobs, purge_orphan_blobs


class Command(BaseCommand):
    help = 'Create the inventory, users and uploads locations and optionally purge orphaned uploads'

    def add_arguments(self, parser):
        parser.add_argument(
            '--admin-username',
            help='Create this admin account if no users exist yet',
        )
        parser.add_argument(
            '--admin-password',
            default='',
            help='Password for --admin-username (generated when omitted)',
        )
        parser.add_argument(
            '--purge-orphans',
            action='store_true',
            help='Delete uploaded files no inventory record references',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='With --purge-orphans, only list the orphaned files',
        )
        parser.add_argument(
            '--reset-analytics',
            action='store_true',
            help='Delete every recorded analytics event',
        )

    def handle(self, *args, **options):
        self.stdout.write(self.style.NOTICE('Initializing dataroom...'))

        upload_dir = get_upload_dir()
        upload_dir.mkdir(parents=True, exist_ok=True)
        self.stdout.write(f'Uploads directory: {upload_dir}')

        try:
            self._init_inventory()
            self._init_users(options['admin_username'], options['admin_password'])
        except DataroomError as e:
            raise CommandError(str(e))

        if options['reset_analytics']:
            self.stdout.write(self.style.WARNING('Resetting analytics events...'))
            deleted = EventLog.clear()
            self.stdout.write(self.style.SUCCESS(f'Deleted {deleted} analytics events'))

        check = check_inventory_blobs()
        if check.get('success') and check['missing']:
            self.stdout.write(
                self.style.WARNING(
                    f"{len(check['missing'])} records point at missing uploads: "
                    f"{', '.join(check['missing'])}"
                )
            )

        if options['purge_orphans']:
            self._purge(options['dry_run'])

        self.stdout.write(self.style.SUCCESS('Dataroom initialized successfully'))

    def _init_inventory(self):
        path = get_inventory_path()
        if path.exists():
            document = InventoryStore.load()
            total = len(document.get('rootFiles', [])) + sum(
                len(category.get('files', [])) for category in document.get('categories', [])
            )
            self.stdout.write(
                f"Inventory: {path} ({len(document.get('categories', []))} categories, {total} files)"
            )
            return

        document = InventoryStore.load(bootstrap=True)
        InventoryStore.touch(document)
        InventoryStore.save(document)
        self.stdout.write(self.style.SUCCESS(f'Created empty inventory at {path}'))

    def _init_users(self, admin_username, admin_password):
        path = get_users_path()
        users = UserDirectory.list_users()
        self.stdout.write(f'Users: {path} ({len(users)} accounts)')

        if not admin_username:
            return
        if users:
            self.stdout.write(self.style.WARNING('Users already exist, not creating an admin account'))
            return

        user = UserDirectory.create_user(
            username=admin_username,
            password=admin_password,
            role='admin',
            name='Administrator',
        )
        self.stdout.write(self.style.SUCCESS(f"Created admin '{user['username']}'"))
        if not admin_password:
            self.stdout.write(f"Generated password: {user['password']}")

    def _purge(self, dry_run):
        self.stdout.write(self.style.NOTICE('Looking for orphaned uploads...'))
        result = purge_orphan_blobs(dry_run=dry_run)

        if not result.get('success'):
            raise CommandError(f"Orphan purge failed: {result.get('error', 'Unknown error')}")

        if dry_run:
            self.stdout.write(f"Orphaned uploads ({len(result['orphans'])}):")
            for name in result['orphans']:
                self.stdout.write(f'  {name}')
            return

        self.stdout.write(
            self.style.SUCCESS(
                f"Purge complete:\n"
                f"  Orphans found: {len(result['orphans'])}\n"
                f"  Deleted: {len(result['deleted'])}\n"
                f"  Failed: {len(result['failed'])}"
            )
        )
