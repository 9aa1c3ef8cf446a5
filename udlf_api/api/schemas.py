"""Request/response models of the HTTP API (camelCase on the wire)."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case fields, camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class HealthResponse(BaseModel):
    message: str
    timestamp: datetime
    status: str


class ExecutionResponse(CamelModel):
    message: str
    output: str
    error: str
    exit_code: int


class LineResponse(CamelModel):
    line: int
    line_content: str


class LineCountResponse(CamelModel):
    success: bool = True
    line_count: int
    file_path: str


class PageItem(CamelModel):
    line_number: int
    file_input_name_line: str


class PageResponse(CamelModel):
    total_items: int
    total_pages: int
    current_page: int
    page_size: int
    items: List[PageItem]


class FileDetailModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    class_name: str = Field(alias="class")
    ordinal: int


class ImageLineResponse(CamelModel):
    image_name: str
    line_number: int


class DatasetPathsModel(CamelModel):
    dataset_list: str
    class_list: str
    images_dir: str
    input_file: str


class DatasetPathsResponse(BaseModel):
    success: bool = True
    data: DatasetPathsModel


class ClearCacheRequest(CamelModel):
    config_file_name: Optional[str] = None


class ClearCacheResponse(CamelModel):
    message: str
    config_file_path: Optional[str] = None


class SignedUrlResponse(CamelModel):
    url: str
    expires_in: int


class DirectoryItemModel(CamelModel):
    name: str
    absolute_path: str
    kind: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None


class DirectoryListingModel(CamelModel):
    current_path: str
    parent_path: Optional[str] = None
    items: List[DirectoryItemModel]
    total_items: int


class SearchResponse(CamelModel):
    search_path: Optional[str] = None
    file_name: str
    max_depth: int
    results: List[DirectoryItemModel]
    total_found: int


class AvailablePath(BaseModel):
    name: str
    path: str


class AvailablePathsResponse(CamelModel):
    root_path: str
    available_paths: List[AvailablePath]


FileDetailsResponse = Dict[str, FileDetailModel]
