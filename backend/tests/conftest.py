import pytest
from unittest.mock import AsyncMock, MagicMock

from portal.config import Settings
from portal.services.documents import DocumentService
from portal.services.object_store import ObjectBody, ObjectInfo, ObjectPage, PutResult


@pytest.fixture
def settings():
    """Settings with stable defaults and no limits, SSE or allowlist."""
    return Settings(
        app_name="Test Portal",
        docs_bucket="pm-customer-documents",
        sendgrid_api_key="SG.test-key",
        mail_from="noreply@example.com",
    )


@pytest.fixture
def mock_store():
    """An object store whose async methods are all AsyncMocks."""
    store = MagicMock()
    store.put_object = AsyncMock(
        return_value=PutResult(
            location="https://s3.eu-central-1.amazonaws.com/pm-customer-documents/documents/u1/id.pdf",
            etag='"etag123"',
        )
    )
    store.upload_stream = AsyncMock(return_value=PutResult(location="x", etag=None))
    store.list_objects = AsyncMock(return_value=ObjectPage())
    store.head_object = AsyncMock(
        return_value=ObjectInfo(content_type="application/pdf", size=5, etag='"h"')
    )
    store.get_object = AsyncMock(
        return_value=ObjectBody(body=b"dummy", content_type="application/pdf")
    )
    store.presign = AsyncMock(return_value="https://signed-url.example/test")
    store.delete_object = AsyncMock(return_value=None)
    store.copy_object = AsyncMock(return_value=None)
    store.exists = AsyncMock(return_value=False)
    return store


@pytest.fixture
def document_service(mock_store, settings):
    return DocumentService(mock_store, settings)
