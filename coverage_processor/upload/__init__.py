"""Report uploader: pushes the remapped profile to the quality backend.

Public API:
    SonarScannerUploader().upload(request) -> UploadResult
    derive_project_key(repository_url) -> (organization, project_key)
"""

from coverage_processor.upload.credentials import (
    CredentialProvider,
    MappingCredentialProvider,
    StaticCredentialProvider,
    credential_from_settings,
)
from coverage_processor.upload.sonar import (
    ReportUploader,
    SonarScannerUploader,
    derive_project_key,
)
from coverage_processor.upload.types import Credential, UploadRequest, UploadResult

__all__ = [
    "Credential",
    "CredentialProvider",
    "MappingCredentialProvider",
    "ReportUploader",
    "SonarScannerUploader",
    "StaticCredentialProvider",
    "UploadRequest",
    "UploadResult",
    "credential_from_settings",
    "derive_project_key",
]
