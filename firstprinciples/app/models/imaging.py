"""
Configuration shape for the browser-side DICOM image loader.

Only the shape is declared here; decoding happens in the client library.
Field aliases match the loader's ``configure()`` option names so a model
dumped with ``by_alias=True`` can be handed to the viewer unchanged.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DecodeConfig(BaseModel):
    """Web-worker concurrency settings and per-codec enable flags."""

    model_config = ConfigDict(populate_by_name=True)

    use_pdfjs: Optional[bool] = Field(default=None, alias="usePDFJS")
    use_native_jpeg2000: Optional[bool] = Field(default=None, alias="useNativeJPEG2000")
    use_native_jpeg_baseline: Optional[bool] = Field(default=None, alias="useNativeJPEGBaseline")
    use_native_jpeg_lossless: Optional[bool] = Field(default=None, alias="useNativeJPEGLossless")
    use_native_jpegls: Optional[bool] = Field(default=None, alias="useNativeJPEGLS")
    use_native_zip: Optional[bool] = Field(default=None, alias="useNativeZIP")
    use_native_multi_frame: Optional[bool] = Field(default=None, alias="useNativeMultiFrame")
    max_web_workers: Optional[int] = Field(default=None, ge=1, alias="maxWebWorkers")
    start_web_workers_on_demand: Optional[bool] = Field(default=None, alias="startWebWorkersOnDemand")
    web_worker_path: Optional[str] = Field(default=None, alias="webWorkerPath")
    web_worker_task_paths: Optional[List[str]] = Field(default=None, alias="webWorkerTaskPaths")
    task_configuration: Optional[Any] = Field(default=None, alias="taskConfiguration")


class ImageLoaderConfig(BaseModel):
    """Options accepted by the image loader's configure() call."""

    model_config = ConfigDict(populate_by_name=True)

    use_web_workers: Optional[bool] = Field(default=None, alias="useWebWorkers")
    decode_config: Optional[DecodeConfig] = Field(default=None, alias="decodeConfig")

    def to_loader_options(self) -> dict:
        """Return the options dict in the loader's own key names, unset keys omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)
