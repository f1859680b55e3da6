from .player import RoundBlock, StepKind, TimelinePlayer, TimelineStep, load_timeline, map_step

__all__ = ["RoundBlock", "StepKind", "TimelinePlayer", "TimelineStep", "load_timeline", "map_step"]
