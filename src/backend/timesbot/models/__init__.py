from timesbot.models.task import CurrentTask, DoneTask

__all__ = [
    "CurrentTask",
    "DoneTask",
]
