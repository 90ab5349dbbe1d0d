"""Text interpretation stages: lines, reading, serial number, manufacturer, pass selection."""
from .lines import lines_to_text, reconstruct_lines
from .manufacturer import MANUFACTURERS, find_manufacturer, match_manufacturer
from .passes import looks_like_meter_reading, select_pass, select_pass_index
from .reading import extract_candidate, extract_numeric_value, extract_reading
from .rules import REJECTION_CHARS, RuleChain
from .serial import extract_serial_number, find_serial_number

__all__ = [
    "MANUFACTURERS",
    "REJECTION_CHARS",
    "RuleChain",
    "extract_candidate",
    "extract_numeric_value",
    "extract_reading",
    "extract_serial_number",
    "find_manufacturer",
    "find_serial_number",
    "lines_to_text",
    "looks_like_meter_reading",
    "match_manufacturer",
    "reconstruct_lines",
    "select_pass",
    "select_pass_index",
]
