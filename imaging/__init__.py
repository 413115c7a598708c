"""
Typed image operations on top of Pillow, numpy and OpenCV.

Key components:
- types: enums (ImageType, Interpretation, Kernel, ...) and Color/Scalar
- formats: magic-byte sniffing and codec availability
- load: ImportParams and loading from buffers, files and host sources
- image: ImageRef, the mutable image handle
- export: per-format export parameters and encoding to buffers or targets
- transform / text: the operations behind ImageRef's methods
- steps: ImageStep classes and the Pipeline that runs them
"""

from .types import (
    Align,
    Angle,
    BlendMode,
    Color,
    ColorRGBA,
    Direction,
    Extend,
    ImageType,
    Intent,
    Interesting,
    Interpretation,
    Kernel,
    Scalar,
    SubsampleMode,
    TiffCompression,
)
from .formats import (
    determine_image_type,
    is_save_supported,
    is_type_supported,
    pillow_format,
    supported_types,
)
from .image import ImageRef
from .load import (
    ImportParams,
    load_image_from_buffer,
    load_image_from_file,
    load_image_from_source,
    merge_import_params,
)
from .export import (
    AvifExportParams,
    BmpExportParams,
    ExportParams,
    FormatExportParams,
    GifExportParams,
    HeifExportParams,
    JpegExportParams,
    PngExportParams,
    TiffExportParams,
    WebpExportParams,
    export_to_buffer,
    export_to_target,
    prepare_for_export,
)
from .text import LabelParams, WatermarkImageParams, WatermarkTextParams
from .transform import is_colorspace_supported

__all__ = [
    # Types
    "Align",
    "Angle",
    "BlendMode",
    "Color",
    "ColorRGBA",
    "Direction",
    "Extend",
    "ImageType",
    "Intent",
    "Interesting",
    "Interpretation",
    "Kernel",
    "Scalar",
    "SubsampleMode",
    "TiffCompression",
    # Formats
    "determine_image_type",
    "is_save_supported",
    "is_type_supported",
    "pillow_format",
    "supported_types",
    # Load
    "ImageRef",
    "ImportParams",
    "load_image_from_buffer",
    "load_image_from_file",
    "load_image_from_source",
    "merge_import_params",
    # Export
    "AvifExportParams",
    "BmpExportParams",
    "ExportParams",
    "FormatExportParams",
    "GifExportParams",
    "HeifExportParams",
    "JpegExportParams",
    "PngExportParams",
    "TiffExportParams",
    "WebpExportParams",
    "export_to_buffer",
    "export_to_target",
    "prepare_for_export",
    # Text and colour
    "LabelParams",
    "WatermarkImageParams",
    "WatermarkTextParams",
    "is_colorspace_supported",
]
