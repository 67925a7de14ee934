# registrar/documents.py

"""
Registrar Document Generation

Renders a released document request to PDF (reportlab platypus) with a QR
code (qrcode) pointing at the verification URL. Builders are looked up by
DocumentType; anything not in the table raises UnsupportedDocumentTypeError.
"""

from datetime import timedelta
from django.conf import settings
from io import BytesIO
import hashlib
import logging

import qrcode
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from registrar.models import DocumentType
from utils.clock import get_clock
from utils.exceptions import UnsupportedDocumentTypeError

logger = logging.getLogger(__name__)

COE_VALIDITY_DAYS = 183

RECORD_COLUMNS = (
    ('term', 'Term'),
    ('subject_code', 'Code'),
    ('description', 'Description'),
    ('units', 'Units'),
    ('grade', 'Grade'),
)


def build_verification_code(document_request):
    """Short hash tying the QR code to this request number."""
    digest = hashlib.sha256(
        f"{document_request.request_number}:{settings.SECRET_KEY}".encode('utf-8')
    ).hexdigest()
    return digest[:16].upper()


def build_verification_url(document_request):
    base_url = getattr(settings, 'DOCUMENT_VERIFICATION_URL', '').rstrip('/')
    return f"{base_url}/{document_request.request_number}/?code={build_verification_code(document_request)}"


# =============================================================================
# DOCUMENT GENERATOR
# =============================================================================

class DocumentGenerator:
    """
    Usage:
        pdf_bytes = DocumentGenerator().generate(document_request)
    """

    def __init__(self, clock=None):
        self.clock = get_clock(clock)
        self.builders = {
            DocumentType.COE: self._build_enrollment_certificate,
            DocumentType.TOR: self._build_records,
            DocumentType.GRADES: self._build_records,
            DocumentType.FORM_137: self._build_records,
            DocumentType.GOOD_MORAL: self._build_good_moral,
            DocumentType.HONORABLE_DISMISSAL: self._build_honorable_dismissal,
            DocumentType.CAV: self._build_certification,
            DocumentType.STANDING_ORDER: self._build_certification,
            DocumentType.DIPLOMA: self._build_diploma,
        }

        styles = getSampleStyleSheet()
        self.styles = {
            'header': ParagraphStyle(
                'InstitutionHeader',
                parent=styles['Heading2'],
                alignment=TA_CENTER,
                textColor=colors.HexColor('#1a1a1a'),
                spaceAfter=4,
            ),
            'subheader': ParagraphStyle(
                'OfficeHeader',
                parent=styles['Normal'],
                alignment=TA_CENTER,
                fontSize=10,
                spaceAfter=20,
            ),
            'title': ParagraphStyle(
                'DocumentTitle',
                parent=styles['Heading1'],
                alignment=TA_CENTER,
                fontSize=18,
                spaceAfter=24,
            ),
            'body': ParagraphStyle(
                'DocumentBody',
                parent=styles['Normal'],
                alignment=TA_JUSTIFY,
                fontSize=11,
                leading=16,
                spaceAfter=12,
            ),
            'small': ParagraphStyle('Small', parent=styles['Normal'], fontSize=8, textColor=colors.grey),
        }

    def supports(self, document_type):
        return document_type in self.builders

    def generate(self, document_request, records=None, **extra):
        """
        Render the document for ``document_request``.

        Args:
            document_request: DocumentRequest instance
            records: Grade rows (dicts keyed by term, subject_code,
                description, units, grade) for TOR, grades and Form 137
            **extra: Builder-specific values, e.g. ``transfer_to`` for
                honorable dismissal

        Returns:
            bytes: The PDF

        Raises:
            UnsupportedDocumentTypeError: If the type has no builder
        """
        try:
            builder = self.builders[document_request.document_type]
        except KeyError:
            logger.warning(f"No builder for document type {document_request.document_type}")
            raise UnsupportedDocumentTypeError(document_request.document_type)

        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            title=f"{document_request.get_document_type_display()} - {document_request.request_number}",
            topMargin=0.75 * inch,
            bottomMargin=0.75 * inch,
        )

        elements = self._letterhead()
        elements.append(Paragraph(document_request.get_document_type_display().upper(), self.styles['title']))
        elements.extend(builder(document_request, records=records or [], **extra))
        elements.extend(self._footer(document_request))

        doc.build(elements)
        logger.info(f"Generated {document_request.document_type} PDF for {document_request.request_number}")
        return buffer.getvalue()

    # -------------------------------------------------------------------------
    # COMMON PARTS
    # -------------------------------------------------------------------------

    def _letterhead(self):
        return [
            Paragraph(getattr(settings, 'INSTITUTION_NAME', 'Campus University'), self.styles['header']),
            Paragraph('Office of the University Registrar', self.styles['subheader']),
        ]

    def _footer(self, document_request):
        today = self.clock.today()
        signature = Table(
            [
                ['', getattr(settings, 'REGISTRAR_NAME', 'University Registrar')],
                ['', 'Registrar'],
            ],
            colWidths=[3.5 * inch, 2.5 * inch],
        )
        signature.setStyle(TableStyle([
            ('ALIGN', (1, 0), (1, -1), 'CENTER'),
            ('FONTNAME', (1, 0), (1, 0), 'Helvetica-Bold'),
            ('LINEABOVE', (1, 0), (1, 0), 0.75, colors.black),
        ]))

        return [
            Spacer(1, 36),
            signature,
            Spacer(1, 24),
            self._qr_image(document_request),
            Paragraph(
                f"Request No. {document_request.request_number} | Issued {today:%B %d, %Y} | "
                f"Verification code {build_verification_code(document_request)}",
                self.styles['small'],
            ),
            Paragraph('Not valid without the registrar\'s signature and dry seal.', self.styles['small']),
        ]

    def _qr_image(self, document_request):
        qr = qrcode.QRCode(box_size=4, border=2)
        qr.add_data(build_verification_url(document_request))
        qr.make(fit=True)

        png = BytesIO()
        qr.make_image().save(png)
        png.seek(0)
        return Image(png, width=1.1 * inch, height=1.1 * inch, hAlign='LEFT')

    def _student_line(self, document_request):
        student = document_request.student
        program = f" taking up <b>{student.course}</b>" if student.course else ''
        return (
            f"<b>{student.get_full_name().upper()}</b> "
            f"(Student No. {student.student_number}){program}"
        )

    def _purpose_line(self, document_request):
        purpose = document_request.purpose or 'whatever legal purpose it may serve'
        today = self.clock.today()
        return Paragraph(
            f"This certification is issued upon the request of the above-named student for "
            f"{purpose}, this {today:%d} day of {today:%B %Y}.",
            self.styles['body'],
        )

    # -------------------------------------------------------------------------
    # BUILDERS
    # -------------------------------------------------------------------------

    def _build_enrollment_certificate(self, document_request, **kwargs):
        student = document_request.student
        valid_until = self.clock.today() + timedelta(days=COE_VALIDITY_DAYS)
        year_level = f", {student.get_year_level_display()}" if student.year_level else ''

        return [
            Paragraph('TO WHOM IT MAY CONCERN:', self.styles['body']),
            Paragraph(
                f"This is to certify that {self._student_line(document_request)}{year_level} "
                f"is officially enrolled in this University for the current term.",
                self.styles['body'],
            ),
            self._purpose_line(document_request),
            Paragraph(f"Valid until {valid_until:%B %d, %Y}.", self.styles['small']),
        ]

    def _build_records(self, document_request, records=(), **kwargs):
        elements = [
            Paragraph(f"Name: {self._student_line(document_request)}", self.styles['body']),
        ]

        if not records:
            elements.append(Paragraph('No academic records were supplied for this request.', self.styles['body']))
            return elements

        data = [[label for _, label in RECORD_COLUMNS]]
        for record in records:
            data.append([str(record.get(key, '')) for key, _ in RECORD_COLUMNS])

        table = Table(data, repeatRows=1, colWidths=[1.2 * inch, 0.9 * inch, 2.6 * inch, 0.6 * inch, 0.7 * inch])
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#4472C4')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('ALIGN', (3, 1), (-1, -1), 'CENTER'),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.black),
        ]))
        elements.append(table)

        total_units = sum(_as_number(record.get('units')) for record in records)
        elements.append(Spacer(1, 8))
        elements.append(Paragraph(f"Total units earned: {total_units:g}", self.styles['body']))
        return elements

    def _build_good_moral(self, document_request, **kwargs):
        return [
            Paragraph('TO WHOM IT MAY CONCERN:', self.styles['body']),
            Paragraph(
                f"This is to certify that {self._student_line(document_request)} is a student of "
                f"this University and, to the best of our knowledge, has not been subjected to any "
                f"disciplinary action and is of good moral character.",
                self.styles['body'],
            ),
            self._purpose_line(document_request),
        ]

    def _build_honorable_dismissal(self, document_request, transfer_to='', **kwargs):
        destination = f" to <b>{transfer_to}</b>" if transfer_to else ''
        return [
            Paragraph('TO WHOM IT MAY CONCERN:', self.styles['body']),
            Paragraph(
                f"This is to certify that {self._student_line(document_request)} is hereby granted "
                f"honorable dismissal{destination}, having no pending obligations with this University.",
                self.styles['body'],
            ),
            Paragraph(
                'The official Transcript of Records will be forwarded upon request of the receiving school.',
                self.styles['body'],
            ),
        ]

    def _build_certification(self, document_request, **kwargs):
        return [
            Paragraph('TO WHOM IT MAY CONCERN:', self.styles['body']),
            Paragraph(
                f"This is to certify that the records of {self._student_line(document_request)} "
                f"are on file with this Office and are authentic and correct.",
                self.styles['body'],
            ),
            self._purpose_line(document_request),
        ]

    def _build_diploma(self, document_request, **kwargs):
        student = document_request.student
        return [
            Spacer(1, 24),
            Paragraph('This certifies that', self.styles['subheader']),
            Paragraph(student.get_full_name().upper(), self.styles['title']),
            Paragraph(
                f"having satisfactorily completed the requirements for "
                f"{student.course or 'the prescribed course of study'}, is awarded this diploma "
                f"with all the rights and privileges thereunto appertaining.",
                self.styles['body'],
            ),
        ]


def _as_number(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0
