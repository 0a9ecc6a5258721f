"""Task and producer contracts."""

from taskd.tasks.command import CommandProducer, CommandTask
from taskd.tasks.producer import (
    EMPTY,
    CallableProducer,
    Empty,
    Many,
    Produced,
    Producer,
    ProducerContractError,
    Single,
    as_producer,
    normalize_produced,
)
from taskd.tasks.task import CallableTask, Task, TaskListener, as_task

__all__ = [
    "EMPTY",
    "CallableProducer",
    "CallableTask",
    "CommandProducer",
    "CommandTask",
    "Empty",
    "Many",
    "Produced",
    "Producer",
    "ProducerContractError",
    "Single",
    "Task",
    "TaskListener",
    "as_producer",
    "as_task",
    "normalize_produced",
]
