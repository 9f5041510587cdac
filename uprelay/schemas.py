from pydantic import BaseModel, Field, model_validator
from typing import Optional, Dict, Any, List, Literal, Union


AclValue = Literal["public-read", "private"]
DispositionValue = Literal["inline", "attachment"]


class FileIdentifier(BaseModel):
    fileKey: Optional[str] = None
    customId: Optional[str] = None

    @model_validator(mode="after")
    def _require_identifier(self):
        if not self.fileKey and not self.customId:
            raise ValueError("Either fileKey or customId is required")
        return self


class DeleteFilesRequest(BaseModel):
    fileKeys: Optional[List[str]] = None
    customIds: Optional[List[str]] = None

    @model_validator(mode="after")
    def _require_identifiers(self):
        if self.fileKeys is None and self.customIds is None:
            raise ValueError("Either fileKeys or customIds is required")
        return self


class ListFilesRequest(BaseModel):
    limit: int = Field(default=20, ge=0)
    offset: int = Field(default=0, ge=0)


class RenameFileUpdate(FileIdentifier):
    newName: str


class RenameFilesRequest(BaseModel):
    updates: List[RenameFileUpdate]


class RequestFileAccessRequest(FileIdentifier):
    expiresIn: Union[int, str] = 3600


class UpdateAclUpdate(FileIdentifier):
    acl: AclValue


class UpdateAclRequest(BaseModel):
    updates: List[UpdateAclUpdate]


class DirectUploadFile(BaseModel):
    name: str = Field(max_length=1024)
    size: int = Field(ge=0)
    type: str
    customId: Optional[str] = Field(default=None, max_length=128)


class DirectUploadRequest(BaseModel):
    files: List[DirectUploadFile]
    acl: Optional[AclValue] = None
    metadata: Optional[Dict[str, Any]] = None
    contentDisposition: DispositionValue = "inline"


class PartEtag(BaseModel):
    tag: str
    partNumber: int


class CompleteMultipartRequest(BaseModel):
    fileKey: str
    uploadId: str
    etags: List[PartEtag]


class FailureCallbackRequest(BaseModel):
    fileKey: str = Field(max_length=300)
    uploadId: Optional[str] = None


class PrepareUploadRequest(BaseModel):
    fileName: str
    fileSize: int = Field(ge=0)
    slug: Optional[str] = None
    fileType: Optional[str] = None
    customId: Optional[str] = None
    contentDisposition: Optional[DispositionValue] = None
    acl: Optional[AclValue] = None
    expiresIn: int = 3600


class RouteMetadataRequest(BaseModel):
    fileKeys: List[str]
    metadata: Optional[Dict[str, Any]] = None
    isDev: bool = False
    callbackUrl: str
    callbackSlug: str
    awaitServerData: bool = True


class ListedFile(BaseModel):
    id: str
    customId: Optional[str] = None
    key: str
    name: str
    size: int
    status: str
    uploadedAt: int


class ListFilesResponse(BaseModel):
    hasMore: bool
    files: List[ListedFile]


class FileRead(BaseModel):
    """Full record as returned after an ingest PUT."""

    id: str
    key: str
    customId: Optional[str] = None
    name: str
    size: int
    type: str
    status: str
    acl: str
    contentDisposition: str
    fileHash: Optional[str] = None
    createdAt: int
    updatedAt: int
    uploadedAt: Optional[int] = None
