from meowith.api import MeowithApiAccessor, pagination_query, range_header
from meowith.connector import ConnectorConfiguration, MeowithConnector
from meowith.entity import (
    Bucket,
    BucketId,
    Entity,
    FileEntity,
    Range,
    Resource,
    UploadSessionInfo,
    UploadSessionResumeResponse,
)
from meowith.error import ConnectorError, Err, NodeClientError, Ok, Result

__all__ = [
    "Bucket",
    "BucketId",
    "ConnectorConfiguration",
    "ConnectorError",
    "Entity",
    "Err",
    "FileEntity",
    "MeowithApiAccessor",
    "MeowithConnector",
    "NodeClientError",
    "Ok",
    "Range",
    "Resource",
    "Result",
    "UploadSessionInfo",
    "UploadSessionResumeResponse",
    "pagination_query",
    "range_header",
]
