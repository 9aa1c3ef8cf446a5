"""
FastAPI application exposing the dataset, execution and browsing services.

Routes are thin: they parse query/path parameters, call one core
operation and shape the result. Every ``UdlfError`` is turned into a JSON
error by a single exception handler.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from .. import __version__
from ..browser import BlobDirectoryBrowser, DirectoryBrowser, PathAllowlist
from ..dataset import DatasetService, count_lines, read_line
from ..errors import BadRequest, ExecutionFailed, NotFound, OutOfBounds, PermissionDenied, UdlfError
from ..execution import ExecutionDriver, ExecutionService, PathRewriter
from ..settings import Deployment, Settings
from ..storage import BlobStorage, build_storage
from ..storage.adapters import DEFAULT_SIGNED_URL_TTL
from .schemas import (
    AvailablePath,
    AvailablePathsResponse,
    ClearCacheRequest,
    ClearCacheResponse,
    DatasetPathsModel,
    DatasetPathsResponse,
    DirectoryItemModel,
    DirectoryListingModel,
    ExecutionResponse,
    FileDetailModel,
    HealthResponse,
    ImageLineResponse,
    LineCountResponse,
    LineResponse,
    PageItem,
    PageResponse,
    SearchResponse,
    SignedUrlResponse,
)

logger = logging.getLogger(__name__)

# Nginx convention for "client closed request"
CLIENT_CLOSED_REQUEST = 499
DISCONNECT_POLL_SECONDS = 1.0


def parse_int_list(value: Optional[str], name: str) -> List[int]:
    """Parse a comma separated list of integers such as ``"1,5,9"``."""
    if not value or not value.strip():
        raise HTTPException(status_code=400, detail=f"{name} is required")
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{name} must be a comma separated list of integers")


def parse_name_list(value: Optional[str]) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def _bare_filename(filename: str) -> str:
    if not filename or "/" in filename or "\\" in filename or filename in (".", ".."):
        raise BadRequest(f"Invalid file name: {filename}")
    return filename


def _detail_models(details) -> Dict[str, FileDetailModel]:
    return {
        filename: FileDetailModel(class_name=d.class_name, ordinal=d.ordinal)
        for filename, d in details.items()
    }


async def _run_until_disconnect(request: Request, task: asyncio.Task):
    """Await ``task``, cancelling it if the client goes away first."""
    while True:
        try:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if done:
            return task.result()
        if await request.is_disconnected():
            logger.warning("Client disconnected, cancelling execution")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            return None


def create_app(settings: Optional[Settings] = None, storage=None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Runtime settings (default: read from the environment)
        storage: StorageAdapter override (default: chosen by deployment)

    Returns:
        Configured FastAPI app
    """
    settings = settings or Settings.from_env()
    storage = storage or build_storage(settings)

    allowlist = PathAllowlist(settings.browse_root, settings.allowed_roots)
    datasets = DatasetService(
        uploads_dir=settings.uploads_dir,
        storage=storage,
        default_paths=settings.default_dataset_paths(),
    )
    rewriter = PathRewriter(
        settings.deployment,
        storage=storage,
        mount_prefix=settings.gcs_mount_path,
    )
    driver = ExecutionDriver(
        executable=settings.executable_path,
        outputs_dir=settings.outputs_dir,
        rewriter=rewriter,
        kill_grace_seconds=settings.kill_grace_seconds,
    )
    executions = ExecutionService(
        driver,
        datasets,
        allowlist=allowlist if settings.restrict_dataset_paths else None,
    )
    browser = DirectoryBrowser(allowlist)
    blob_browser = BlobDirectoryBrowser(storage) if isinstance(storage, BlobStorage) else None

    app = FastAPI(
        title="UDLF API",
        description="Runs the UDLF binary and serves its dataset and output files",
        version=__version__,
    )
    app.state.settings = settings
    app.state.datasets = datasets
    app.state.executions = executions

    logger.info(
        f"UDLF API configured: deployment={settings.deployment.value}, "
        f"root={settings.browse_root}, uploads={settings.uploads_dir}, outputs={settings.outputs_dir}"
    )

    @app.exception_handler(UdlfError)
    async def handle_udlf_error(request: Request, exc: UdlfError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path}: {exc.message}")

        content = {"detail": exc.message}
        if isinstance(exc, ExecutionFailed):
            content.update(exitCode=exc.exit_code, output=exc.stdout, error=exc.stderr)
        elif isinstance(exc, OutOfBounds):
            content.update(ordinal=exc.ordinal, total=exc.total)
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.get("/", response_model=HealthResponse)
    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint."""
        return HealthResponse(
            message="UDLF API is running",
            timestamp=datetime.now(timezone.utc),
            status="ok",
        )

    # ---- execution ------------------------------------------------------

    @app.get("/execute/{config_name}", response_model=ExecutionResponse)
    async def execute(config_name: str, request: Request):
        """Run the binary on an uploaded config and return its output."""
        task = asyncio.create_task(executions.execute(config_name))
        result = await _run_until_disconnect(request, task)
        if result is None:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        return ExecutionResponse(
            message="Execution completed successfully",
            output=result.stdout,
            error=result.stderr,
            exit_code=result.exit_code,
        )

    @app.get("/outputs/{filename}/line/{line}", response_model=LineResponse)
    def output_line(filename: str, line: int):
        """One line of an output file (1-indexed)."""
        path = settings.outputs_dir / _bare_filename(filename)
        content = read_line(path, line)
        if content is None:
            raise NotFound(f"Line {line} not found in {filename}")
        return LineResponse(line=line, line_content=content)

    @app.get("/get-log-content/{filename}")
    def log_content(filename: str):
        path = settings.outputs_dir / _bare_filename(filename)
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            raise NotFound(f"File not found: {filename}")
        except OSError as e:
            raise BadRequest(f"Cannot read {filename}: {e}") from e

    @app.get("/count-file-lines", response_model=LineCountResponse)
    def file_line_count(file_path: str = Query(..., alias="filePath")):
        if not allowlist.is_allowed(file_path):
            raise PermissionDenied(f"Access denied: {file_path} is not allowed")
        target = allowlist.normalize(file_path)
        return LineCountResponse(line_count=count_lines(target), file_path=target)

    # ---- dataset index --------------------------------------------------

    @app.get("/file-input-name-by-index", response_model=List[PageItem])
    def file_names_by_index(
        index_list: Optional[str] = Query(None, alias="indexList"),
        config_file: str = Query(..., alias="configFile"),
    ):
        """Filenames at the binary's 0-based ranked-list positions."""
        positions = parse_int_list(index_list, "indexList")
        index = datasets.index_for(datasets.config_path(config_file))
        return [
            PageItem(line_number=e.ordinal, file_input_name_line=e.filename)
            for e in index.resolve_by_ordinals(p + 1 for p in positions)
        ]

    @app.get("/file-input-details-by-line-numbers", response_model=Dict[str, FileDetailModel])
    def details_by_line_numbers(
        line_numbers: Optional[str] = Query(None, alias="lineNumbers"),
        config_file: str = Query(..., alias="configFile"),
    ):
        ordinals = parse_int_list(line_numbers, "lineNumbers")
        index = datasets.index_for(datasets.config_path(config_file))
        return _detail_models(index.details_for_ordinals(ordinals))

    @app.get("/get-line-by-image-name/{image_name}", response_model=ImageLineResponse)
    def line_by_image_name(image_name: str, config_file: str = Query(..., alias="configFile")):
        index = datasets.index_for(datasets.config_path(config_file))
        return ImageLineResponse(image_name=image_name, line_number=index.get_ordinal_for(image_name))

    @app.get(
        "/paginated-file-list-by-config/{config_name}/page/{page_index}",
        response_model=PageResponse,
    )
    def paginated_file_list(
        config_name: str,
        page_index: int,
        page_size: int = Query(10, alias="pageSize"),
    ):
        index = datasets.index_for(datasets.config_path(config_name))
        page = index.list_page(page_index, page_size)
        return PageResponse(
            total_items=page.total_items,
            total_pages=page.total_pages,
            current_page=page.current_page,
            page_size=page.page_size,
            items=[
                PageItem(line_number=e.ordinal, file_input_name_line=e.filename)
                for e in page.items
            ],
        )

    @app.get("/get-all-input-file-names", response_model=List[str])
    def all_input_file_names(config_file: str = Query(..., alias="configFile")):
        return datasets.index_for(datasets.config_path(config_file)).all_filenames()

    @app.get("/grouped-input-class-names/{config_name}", response_model=Dict[str, List[str]])
    def grouped_class_names(config_name: str):
        return datasets.index_for(datasets.config_path(config_name)).filenames_grouped_by_class()

    @app.get("/input-file-details-by-name", response_model=Dict[str, FileDetailModel])
    def details_by_name(
        config_file: str = Query(..., alias="configFile"),
        filenames: Optional[str] = Query(None),
    ):
        """Class and ordinal per filename; all joined files when no names are given."""
        index = datasets.index_for(datasets.config_path(config_file))
        names = parse_name_list(filenames)
        if names:
            return _detail_models(index.details_for_filenames(names))
        return _detail_models(index.details_by_filename())

    @app.get("/dynamic-paths/{config_name}", response_model=DatasetPathsResponse)
    def dynamic_paths(config_name: str):
        paths = datasets.dataset_paths(datasets.config_path(config_name))
        return DatasetPathsResponse(data=DatasetPathsModel.model_validate(paths))

    @app.post("/clear-cache", response_model=ClearCacheResponse, response_model_exclude_none=True)
    def clear_cache(body: Optional[ClearCacheRequest] = None):
        name = body.config_file_name if body else None
        if name:
            config_path = datasets.config_path(name)
            datasets.clear_cache(config_path)
            return ClearCacheResponse(
                message=f"Cache cleared for {name}",
                config_file_path=str(config_path),
            )
        datasets.clear_cache()
        return ClearCacheResponse(message="Cache cleared for all configs")

    @app.get("/signed-url", response_model=SignedUrlResponse)
    def signed_url(path: str, ttl: int = Query(DEFAULT_SIGNED_URL_TTL, ge=1)):
        return SignedUrlResponse(url=storage.signed_url(path, ttl), expires_in=ttl)

    # ---- directory browsing ---------------------------------------------

    @app.get(
        "/api/directory/list",
        response_model=DirectoryListingModel,
        response_model_exclude_none=True,
    )
    def list_directory(path: Optional[str] = None):
        if blob_browser is not None and settings.deployment == Deployment.BLOB:
            listing = blob_browser.list(path)
        else:
            listing = browser.list(path)
        logger.debug(f"Listed {listing.current_path}: {listing.total_items} items")
        return DirectoryListingModel.model_validate(listing)

    @app.get("/api/directory/info", response_model=DirectoryItemModel, response_model_exclude_none=True)
    def directory_info(path: str = ""):
        return DirectoryItemModel.model_validate(browser.stat(path))

    @app.get("/api/directory/search", response_model=SearchResponse, response_model_exclude_none=True)
    def search_directory(
        path: Optional[str] = None,
        file_name: str = Query("", alias="fileName"),
        max_depth: int = Query(3, alias="maxDepth"),
    ):
        results = browser.search(path, file_name, max_depth)
        return SearchResponse(
            search_path=path,
            file_name=file_name,
            max_depth=max_depth,
            results=[DirectoryItemModel.model_validate(item) for item in results],
            total_found=len(results),
        )

    @app.get("/api/directory/available-paths", response_model=AvailablePathsResponse)
    def available_paths():
        return AvailablePathsResponse(
            root_path=browser.root,
            available_paths=[AvailablePath(name=n, path=p) for n, p in browser.available_paths()],
        )

    return app
