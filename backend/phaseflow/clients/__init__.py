"""External collaborator interfaces and their concrete clients."""

from phaseflow.clients.index import IndexClient
from phaseflow.clients.protocols import (
    IndexService,
    MemberRepository,
    ObjectStorage,
    ReviewService,
    SubmissionRecords,
)
from phaseflow.clients.repository import MemberRepositoryClient
from phaseflow.clients.review import ReviewClient
from phaseflow.clients.storage import S3ObjectStorage

__all__ = [
    "IndexClient",
    "IndexService",
    "MemberRepository",
    "MemberRepositoryClient",
    "ObjectStorage",
    "ReviewClient",
    "ReviewService",
    "S3ObjectStorage",
    "SubmissionRecords",
]
