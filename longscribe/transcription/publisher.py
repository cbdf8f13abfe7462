"""Pub/sub event channel for transcription completion and progress."""

import logging
from typing import Any, Callable, List, Optional

from pubsub import pub

from ..models.jobs import PendingJob
from ..models.transcription import TranscriptionProgress, TranscriptionResult

logger = logging.getLogger(__name__)

COMPLETED_TOPIC = "transcription.completed"
PROGRESS_TOPIC = "transcription.progress"


class ListenerFailureLogger:
    """pubsub listener exception handler.

    A listener that raises is logged and skipped, so the remaining listeners
    still receive the message and the publisher never sees the error.
    """

    def __call__(self, listener_id: str, topic_obj: Any) -> None:
        logger.exception(f"❌ Listener {listener_id} failed handling {topic_obj.getName()}")


pub.setListenerExcHandler(ListenerFailureLogger())


class TopicPublisher:
    """Publishes messages on one pubsub topic."""

    def __init__(self, topic: str):
        """Initialize publisher.

        Args:
            topic: Pub/sub topic name
        """
        self.topic = topic
        # pubsub only keeps weak references to listeners
        self._listeners: List[Callable[..., Any]] = []
        logger.info(f"{type(self).__name__} initialized with topic: {topic}")

    def subscribe(self, listener: Callable[..., Any]) -> Callable[..., Any]:
        """Register ``listener`` on the topic and keep it alive."""
        self._listeners.append(listener)
        pub.subscribe(listener, self.topic)
        return listener

    def unsubscribe_all(self) -> None:
        for listener in self._listeners:
            if pub.isSubscribed(listener, self.topic):
                pub.unsubscribe(listener, self.topic)
        self._listeners.clear()


class CompletionPublisher(TopicPublisher):
    """Announces finished transcriptions, each exactly once."""

    def __init__(self, topic: str = COMPLETED_TOPIC):
        super().__init__(topic)

    def publish(self, result: TranscriptionResult, job: Optional[PendingJob] = None) -> None:
        """Publish a completed transcription.

        Args:
            result: Final transcription result
            job: Asynchronous job the result belongs to, if any
        """
        pub.sendMessage(self.topic, result=result, job=job)
        job_info = f" for job {job.job_id}" if job else ""
        logger.debug(f"Published transcription result{job_info} ({len(result.full_text)} chars)")


class ProgressPublisher(TopicPublisher):
    """Announces chunk-by-chunk progress."""

    def __init__(self, topic: str = PROGRESS_TOPIC):
        super().__init__(topic)

    def publish(self, progress: TranscriptionProgress) -> None:
        pub.sendMessage(self.topic, progress=progress)
        logger.debug(f"Progress: {progress.formatted_progress}")
