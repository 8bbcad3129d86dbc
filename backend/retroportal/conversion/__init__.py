from .converter import PillowConverter, SubprocessConverter, build_convert_args, get_converter
from .models import ImageFormat, PipelineState, TranscodeSpec
from .pipeline import TranscodePipeline, TranscodeResponse

__all__ = [
    "ImageFormat",
    "PillowConverter",
    "PipelineState",
    "SubprocessConverter",
    "TranscodePipeline",
    "TranscodeResponse",
    "TranscodeSpec",
    "build_convert_args",
    "get_converter",
]
