import base64
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

import constants


class StreamUploadRequest(BaseModel):
    projectId: str = Field(..., min_length=1, description="The project the uploaded video belongs to.")
    fileName: str = Field(..., min_length=1, description="Original name of the file being uploaded.")
    fileSize: int = Field(default=0, ge=0, description="Size of the file in bytes.")
    contentType: Optional[str] = Field(default=None, description="MIME type reported by the browser.")
    guestName: Optional[str] = Field(default=None, description="Name of the guest uploading, if not the owner.")
    guestMessage: Optional[str] = Field(default=None, description="Message left by the guest alongside the upload.")


class ObjectStorageRequest(BaseModel):
    action: str = Field(..., description="'upload' or 'get_signed_url'.")
    projectId: str = Field(..., min_length=1)
    fileName: str = Field(..., min_length=1)
    fileContent: Optional[Union[List[int], str]] = Field(
        default=None,
        description="File bytes as a list of byte values, or a base64 string.",
    )
    contentType: Optional[str] = None

    def content_bytes(self) -> bytes:
        if self.fileContent is None:
            return b""
        if isinstance(self.fileContent, str):
            return base64.b64decode(self.fileContent)
        return bytes(self.fileContent)


class VerifyPaymentRequest(BaseModel):
    session_id: str = Field(..., min_length=1, description="Stripe checkout session id.")


class CreatePaymentRequest(BaseModel):
    tier: Literal["premium", "professional"]
    amount: int = Field(..., gt=0, le=constants.MAX_PAYMENT_AMOUNT, description="Amount in cents.")
    product_name: Optional[str] = None
    mode: Literal["payment", "subscription"] = "payment"
    project_id: Optional[str] = Field(default=None, max_length=100)

    @field_validator("amount", mode="before")
    @classmethod
    def reject_non_integer_amount(cls, value):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("Invalid amount specified")
        return value


class FeatureAccessRequest(BaseModel):
    feature: str = Field(..., min_length=1)
    projectId: Optional[str] = None
    userId: Optional[str] = Field(default=None, description="Only honoured on direct invocations without an API Gateway request context.")


class ProcessingSettings(BaseModel):
    videoStyle: str = "romantic"
    duration: str = "30s"
    contentFocus: str = "balanced"
    musicStyle: Optional[str] = None
    customMusicUrl: Optional[str] = None
    quality: Literal["standard", "hd", "4k"] = "standard"
    includeBranding: bool = False
    priority: bool = False


class StartProcessingRequest(BaseModel):
    projectId: str = Field(..., min_length=1)
    userId: Optional[str] = None
    settings: ProcessingSettings = Field(default_factory=ProcessingSettings)
