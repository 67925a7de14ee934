"""
PDF rendering of registrar documents.
"""
import pytest

from registrar.documents import DocumentGenerator, build_verification_code, build_verification_url
from registrar.models import DocumentType
from utils.exceptions import UnsupportedDocumentTypeError

pytestmark = pytest.mark.django_db

RECORDS = [
    {'term': '1st Sem 2023-2024', 'subject_code': 'CS101', 'description': 'Intro to Computing', 'units': 3, 'grade': '1.25'},
    {'term': '1st Sem 2023-2024', 'subject_code': 'MATH11', 'description': 'Calculus I', 'units': '4', 'grade': '1.75'},
]


@pytest.fixture
def generator(clock):
    return DocumentGenerator(clock=clock)


@pytest.mark.parametrize('document_type', list(DocumentType))
def test_every_document_type_renders(generator, document_request, document_type):
    document_request.document_type = document_type

    pdf = generator.generate(document_request, records=RECORDS, transfer_to='Mapua University')

    assert generator.supports(document_type)
    assert pdf.startswith(b'%PDF')
    assert len(pdf) > 1000


def test_records_without_rows_still_render(generator, document_request):
    assert generator.generate(document_request).startswith(b'%PDF')


def test_unknown_type_is_rejected(generator, document_request):
    document_request.document_type = 'library_card'

    with pytest.raises(UnsupportedDocumentTypeError) as exc_info:
        generator.generate(document_request)

    assert exc_info.value.document_type == 'library_card'
    assert not generator.supports('library_card')


def test_verification_code_is_stable(document_request, settings):
    code = build_verification_code(document_request)

    assert code == build_verification_code(document_request)
    assert len(code) == 16
    assert code == code.upper()

    settings.SECRET_KEY = 'rotated-secret-key'
    assert build_verification_code(document_request) != code


def test_verification_url(document_request, settings):
    settings.DOCUMENT_VERIFICATION_URL = 'https://portal.campus.test/verify/'

    url = build_verification_url(document_request)

    assert url.startswith(f'https://portal.campus.test/verify/{document_request.request_number}/?code=')
    assert url.endswith(build_verification_code(document_request))
