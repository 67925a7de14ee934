"""
Scholarship recipient Excel export.
"""
from datetime import date
from io import BytesIO

import pytest
from openpyxl import load_workbook

from scholarships.exports import EXPORT_HEADERS, export_recipients_excel, filter_recipients
from scholarships.models import ScholarshipRecipient

pytestmark = pytest.mark.django_db


def read_rows(content):
    sheet = load_workbook(BytesIO(content)).active
    return [list(row) for row in sheet.iter_rows(values_only=True)]


@pytest.fixture
def second_semester(other_student, scholarship):
    return ScholarshipRecipient.objects.create(
        student=other_student,
        scholarship=scholarship,
        academic_year='2024-2025',
        semester='2nd',
        amount='12500.50',
        status='Suspended',
        date_awarded=date(2025, 1, 20),
    )


def test_header_and_rows(recipient, second_semester):
    recipient.date_awarded = date(2024, 8, 1)
    recipient.save()

    rows = read_rows(export_recipients_excel())

    assert rows[0] == EXPORT_HEADERS
    assert len(rows) == 3
    newest = rows[1]
    assert newest[1] == '2022-00456'
    assert newest[5] == 'Suspended'
    assert newest[6] == 'PHP 12,500.50'
    assert newest[9] == '2025-01-20'
    assert newest[10] == 'N/A'
    assert newest[12] == 'No'


def test_header_style():
    header = load_workbook(BytesIO(export_recipients_excel())).active['A1']

    assert header.font.bold
    assert header.fill.start_color.rgb.endswith('4472C4')


def test_filters(recipient, second_semester):
    assert list(filter_recipients({'semester': '2nd'})) == [second_semester]
    assert list(filter_recipients({'status': 'Active', 'academic_year': '2024-2025'})) == [recipient]
    assert list(filter_recipients({'date_from': date(2025, 1, 1), 'date_to': date(2025, 1, 31)})) == [second_semester]
    assert set(filter_recipients({'semester': ''})) == {recipient, second_semester}


def test_filtered_export(recipient, second_semester):
    rows = read_rows(export_recipients_excel({'status': 'Active'}))

    assert [row[1] for row in rows[1:]] == ['2021-00123']
    assert rows[1][11] == 'N/A'
    assert rows[1][12] == 'Yes'


def test_explicit_queryset(recipient, second_semester):
    queryset = ScholarshipRecipient.objects.filter(pk=second_semester.pk)

    rows = read_rows(export_recipients_excel(queryset=queryset))

    assert [row[0] for row in rows[1:]] == [str(second_semester.pk)]


def test_empty_export_has_only_headers():
    assert read_rows(export_recipients_excel()) == [EXPORT_HEADERS]
