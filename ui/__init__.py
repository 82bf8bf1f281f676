"""UI layer -- Rich dashboard and output formatters."""

from .dashboard import (
    ProgressDisplay,
    console,
    create_histogram,
    print_failure,
    print_final_results,
    print_header,
    print_latency_details,
    print_speed_result,
    print_target,
)
from .output import create_result_json, format_text_result, save_json

__all__ = [
    "ProgressDisplay",
    "console",
    "create_histogram",
    "create_result_json",
    "format_text_result",
    "print_failure",
    "print_final_results",
    "print_header",
    "print_latency_details",
    "print_speed_result",
    "print_target",
    "save_json",
]
