"""
MAKER reliability layer: N concurrent microagents plus consensus voting.
"""

from .consensus import VoteTally, normalize_item, pick_summary, tally
from .microagent import MicroagentOutput, RedFlagError, build_prompt, parse_output, red_flag, run_microagent
from .reliable import MakerConfig, MakerResult, maker_reliable_extract, maker_result_to_memories

__all__ = [
    "MakerConfig",
    "MakerResult",
    "MicroagentOutput",
    "RedFlagError",
    "VoteTally",
    "build_prompt",
    "maker_reliable_extract",
    "maker_result_to_memories",
    "normalize_item",
    "parse_output",
    "pick_summary",
    "red_flag",
    "run_microagent",
    "tally",
]
