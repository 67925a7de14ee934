# scholarships/exports.py

from io import BytesIO
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
import logging

from scholarships.models import ScholarshipRecipient

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    'Recipient ID', 'Student Number', 'Student Name', 'Email', 'Scholarship',
    'Status', 'Amount', 'Semester', 'Academic Year', 'Date Awarded',
    'Expiration Date', 'Renewal Status', 'Requirements Complete', 'Remarks'
]

FILTER_FIELDS = ('scholarship_id', 'status', 'semester', 'academic_year')


def filter_recipients(filters=None):
    """
    Recipients matching the export filters.

    Supported keys: scholarship_id, status, semester, academic_year,
    date_from, date_to (on date_awarded). Empty values are ignored.
    """
    filters = filters or {}
    queryset = ScholarshipRecipient.objects.select_related('student', 'scholarship')

    for key in FILTER_FIELDS:
        if filters.get(key):
            queryset = queryset.filter(**{key: filters[key]})

    if filters.get('date_from'):
        queryset = queryset.filter(date_awarded__gte=filters['date_from'])
    if filters.get('date_to'):
        queryset = queryset.filter(date_awarded__lte=filters['date_to'])

    return queryset.order_by('-date_awarded', 'student__last_name')


def export_recipients_excel(filters=None, queryset=None):
    """
    Build the scholarship recipients workbook from ``filters``, or from
    an explicit ``queryset`` (admin selection).

    Returns:
        bytes: XLSX file content
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Scholarship Recipients"

    ws.append(EXPORT_HEADERS)

    # Style headers
    for cell in ws[1]:
        cell.fill = PatternFill(start_color='4472C4', end_color='4472C4', fill_type='solid')
        cell.font = Font(bold=True, color='FFFFFF')

    count = 0
    if queryset is None:
        queryset = filter_recipients(filters)
    else:
        queryset = queryset.select_related('student', 'scholarship')

    for recipient in queryset:
        ws.append([
            str(recipient.pk),
            recipient.student.student_number,
            recipient.student.get_full_name(),
            recipient.student.email or 'N/A',
            recipient.scholarship.name,
            recipient.get_status_display(),
            f"PHP {recipient.amount:,.2f}",
            recipient.semester,
            recipient.academic_year,
            recipient.date_awarded.strftime('%Y-%m-%d') if recipient.date_awarded else 'N/A',
            recipient.expiration_date.strftime('%Y-%m-%d') if recipient.expiration_date else 'N/A',
            recipient.renewal_status or 'N/A',
            'Yes' if recipient.requirements_complete else 'No',
            recipient.remarks or 'N/A',
        ])
        count += 1

    buffer = BytesIO()
    wb.save(buffer)
    logger.info(f"Exported {count} scholarship recipient(s)")
    return buffer.getvalue()
