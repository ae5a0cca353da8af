"""Existing data policy helpers."""

from shopsync.core.data_objects import ExistingDataBehavior


def should_adopt(behavior: ExistingDataBehavior) -> bool:
    """Look for an unmapped remote record before creating a new one."""
    return behavior in (ExistingDataBehavior.ADOPT, ExistingDataBehavior.ADOPT_AND_ARCHIVE)


def should_archive_orphans(behavior: ExistingDataBehavior) -> bool:
    """Archive records dropped from the source instead of deleting them."""
    return behavior == ExistingDataBehavior.ADOPT_AND_ARCHIVE
