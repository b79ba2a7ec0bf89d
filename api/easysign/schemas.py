from pydantic import BaseModel, Field
from typing import Dict, Literal, Optional

FieldType = Literal["signature", "initials", "date", "text", "checkbox"]
Alignment = Literal["left", "center", "right"]

class UploadUrlRequest(BaseModel):
    filename: str
    file_size: int
    content_type: str

class DocumentCreate(BaseModel):
    filename: str
    key: str
    file_size: int
    page_count: Optional[int] = None
    subject: Optional[str] = None
    message: Optional[str] = None

class DocumentRename(BaseModel):
    filename: str = Field(min_length=1, max_length=255)

class DocumentSend(BaseModel):
    mode: Literal["initial", "stage"] = "initial"

class SignerCreate(BaseModel):
    email: str
    name: str
    order: int = Field(default=0, ge=0)

class SignerUpdate(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    order: Optional[int] = Field(default=None, ge=0)

class FieldCreate(BaseModel):
    signer_id: str
    page_number: int = Field(ge=1)
    x_position: float
    y_position: float
    width: float
    height: float
    field_type: FieldType = "signature"
    required: bool = True
    font_size: float = 14
    font_family: str = "Arial"
    color: str = "#000000"
    alignment: Alignment = "left"
    placeholder: Optional[str] = None

class FieldUpdate(BaseModel):
    page_number: Optional[int] = Field(default=None, ge=1)
    x_position: Optional[float] = None
    y_position: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    font_size: Optional[float] = None
    font_family: Optional[str] = None
    color: Optional[str] = None
    alignment: Optional[Alignment] = None
    placeholder: Optional[str] = None
    required: Optional[bool] = None

class SignComplete(BaseModel):
    values: Dict[str, str]  # field_id -> value (text/date/"true" for checkbox/signature data URL)
