"""
Queue Module.

At-least-once delivery of correction jobs:
- QueuePort: provider abstraction
- InMemoryQueue / SQSQueue: providers
- QueueConsumer: polling loop with retry and dead-letter decisions
"""

from docrepair.queue.base import QueuePort
from docrepair.queue.consumer import MessageHandler, QueueConsumer
from docrepair.queue.memory import InMemoryQueue
from docrepair.queue.sqs import SQSQueue, create_sqs_client

__all__ = [
    "QueuePort",
    "QueueConsumer",
    "MessageHandler",
    "InMemoryQueue",
    "SQSQueue",
    "create_sqs_client",
]
