"""
Transfer phase: tool invocation, output parsing and process supervision.
"""

from .command import build_mirror_args, format_command
from .parser import LineUpdate, TransferOutputParser, parse_size
from .supervisor import TransferSupervisor

__all__ = [
    "LineUpdate",
    "TransferOutputParser",
    "TransferSupervisor",
    "build_mirror_args",
    "format_command",
    "parse_size",
]
