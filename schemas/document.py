from pydantic import BaseModel, Field


class DocumentCreate(BaseModel):
    file_name: str = Field(..., alias="fileName", min_length=1, max_length=255)
    file_url: str = Field(..., alias="fileUrl", min_length=1, max_length=1024)

    model_config = {"populate_by_name": True}
