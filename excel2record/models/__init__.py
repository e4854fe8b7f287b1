"""Domain models for the Excel -> record converter.

This package contains the configuration, raw sheet, per-sheet conversion and
result models used throughout the application.
"""

from .config_models import ConvertConfig, GenerateConfig
from .conversion_config import ConversionConfig, build_conversion_config
from .error_record import ErrorRecord
from .processing_result import ConfigResult, ProcessingResult, SheetResult, SheetStatus
from .sheet_data import RawDataKey, RawSheetData, parse_sheet_entry

__all__ = [
    # Configuration models
    "ConvertConfig",
    "GenerateConfig",
    "ConversionConfig",
    "build_conversion_config",
    # Raw data
    "RawDataKey",
    "RawSheetData",
    "parse_sheet_entry",
    # Results
    "ConfigResult",
    "ErrorRecord",
    "ProcessingResult",
    "SheetResult",
    "SheetStatus",
]
