from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


ContentType = Literal["customer", "company", "lead", "product", "deal", "task", "ticket"]


class ImportUser(BaseModel):
    """Initiating user, as forwarded by the API gateway."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., alias="_id")


class ImportCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., alias="fileName", description="Uploaded file name (local path suffix or object key)")
    type: ContentType
    file_type: str = Field("csv", alias="fileType")
    upload_type: Literal["local", "AWS"] = Field("local", alias="uploadType")
    scope_brand_ids: List[str] = Field(default_factory=list, alias="scopeBrandIds")
    user: ImportUser

    def to_content(self) -> Dict[str, Any]:
        """Shape consumed by the import orchestrator."""
        return {
            "fileName": self.file_name,
            "type": self.type,
            "fileType": self.file_type,
            "uploadType": self.upload_type,
            "scopeBrandIds": self.scope_brand_ids,
            "user": self.user.model_dump(by_alias=True),
        }


class ImportCreateResponse(BaseModel):
    id: str


class ImportStatusResponse(BaseModel):
    status: str


class ImportHistoryResponse(BaseModel):
    """Persisted import history in its external record shape."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    content_type: str = Field(..., alias="contentType")
    user_id: Optional[str] = Field(None, alias="userId")
    date: Optional[datetime] = None
    total: Optional[int] = None
    success: int = 0
    failed: int = 0
    percentage: float = 0.0
    status: str
    error_msgs: List[str] = Field(default_factory=list, alias="errorMsgs")
    ids: List[str] = Field(default_factory=list)
