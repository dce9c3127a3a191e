"""
Level curve - pure functions mapping accumulated XP to level and progress.

Linear curve: every level costs XP_PER_LEVEL, hard cap at MAX_LEVEL.
  Level 1:    0 XP
  Level 2:   50 XP
  Level 5:  200 XP
  Level 10: 450 XP
  Level 50: 2450 XP (cap)
"""
XP_PER_LEVEL = 50
MAX_LEVEL = 50


def level_for_xp(total_xp: int) -> int:
    """Level reached with total_xp (1..MAX_LEVEL)."""
    if total_xp < 0:
        raise ValueError("total_xp must be >= 0")
    return min(total_xp // XP_PER_LEVEL + 1, MAX_LEVEL)


def xp_required(level: int) -> int:
    """Total XP needed to reach level."""
    if not 1 <= level <= MAX_LEVEL:
        raise ValueError(f"level must be between 1 and {MAX_LEVEL}")
    return (level - 1) * XP_PER_LEVEL


def xp_for_next_level(total_xp: int) -> int:
    """XP still missing until the next level (0 at the cap)."""
    if level_for_xp(total_xp) == MAX_LEVEL:
        return 0
    return XP_PER_LEVEL - total_xp % XP_PER_LEVEL


def progress_percent(total_xp: int) -> float:
    """Progress through the current level, 0..100 (100 at the cap)."""
    if level_for_xp(total_xp) == MAX_LEVEL:
        return 100.0
    return (total_xp % XP_PER_LEVEL) / XP_PER_LEVEL * 100


def compute_level(total_xp: int) -> tuple[int, int, float]:
    """
    Derive level, xp_for_next_level, progress_percent from total_xp.

    Returns:
        (level, xp_for_next_level, progress_percent)
    """
    return level_for_xp(total_xp), xp_for_next_level(total_xp), progress_percent(total_xp)
