# registrar/management/commands/expire_unpaid_requests.py

from django.core.management.base import BaseCommand

from registrar.services import DocumentRequestService
from utils.context import RequestContext


class Command(BaseCommand):
    help = 'Expire document requests still pending payment after their payment deadline'

    def handle(self, *args, **options):
        with RequestContext(request_path='command:expire_unpaid_requests'):
            expired = DocumentRequestService().expire_overdue_requests()

        self.stdout.write(self.style.SUCCESS(f'Expired {expired} document request(s)'))
