"""Google Speech-to-Text long-running (batch) recognition backend."""

import asyncio
import os
import uuid
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from .base import AsyncJobBackend
from .google_backend import DEFAULT_SPEAKER, TRANSIENT_ERRORS, _seconds
from ..errors import ErrorDisposition
from ..models.backends import BackendKind, CloudBatchConfig
from ..models.jobs import JobStatus, JobStatusReport
from ..models.transcription import TranscriptSegment, TranscriptionResult

from google.cloud import speech
from google.cloud import storage
from google.api_core import exceptions as gax_exceptions
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "audio-files"


class GoogleBatchBackend(AsyncJobBackend):
    """Uploads recordings to Cloud Storage and transcribes them with ``long_running_recognize``.

    The job id is the name of the long-running operation, so jobs can be
    polled again after a restart.
    """

    kind = BackendKind.CLOUD_BATCH
    accepted_suffixes = (".wav", ".flac")
    normalized_audio = True

    def __init__(self, config: CloudBatchConfig, speech_client=None, storage_client=None):
        super().__init__(config)
        self.max_duration = config.max_duration
        self.speech_client = speech_client
        self.storage_client = storage_client

        diarization = None
        if config.enable_speaker_diarization:
            diarization = speech.SpeakerDiarizationConfig(
                enable_speaker_diarization=True,
                min_speaker_count=1,
                max_speaker_count=config.max_speakers,
            )
        self.recognition_config = speech.RecognitionConfig(
            language_code=config.language_code,
            model=config.model,
            enable_automatic_punctuation=True,
            enable_word_time_offsets=True,
            diarization_config=diarization,
        )

    def check_capability(self) -> bool:
        if self.speech_client is not None and self.storage_client is not None:
            return True
        return os.path.isfile(self.config.credentials_path)

    def _ensure_clients(self) -> None:
        if self.speech_client is not None and self.storage_client is not None:
            return
        logger.info(f"Loading Google credentials from: {self.config.credentials_path}")
        credentials = service_account.Credentials.from_service_account_file(self.config.credentials_path)
        if self.speech_client is None:
            self.speech_client = speech.SpeechClient(credentials=credentials)
        if self.storage_client is None:
            self.storage_client = storage.Client(credentials=credentials, project=credentials.project_id)

    async def test_connection(self) -> bool:
        def check() -> bool:
            self._ensure_clients()
            return self.storage_client.bucket(self.config.bucket_name).exists()

        try:
            exists = await asyncio.to_thread(check)
        except (ValueError, OSError, gax_exceptions.GoogleAPIError) as e:
            logger.warning(f"Cloud batch backend unreachable: {e}")
            return False
        if not exists:
            logger.warning(f"Storage bucket '{self.config.bucket_name}' does not exist")
        return exists

    async def submit_job(self, audio_path: Path) -> str:
        return await asyncio.to_thread(self._submit, Path(audio_path))

    def _submit(self, audio_path: Path) -> str:
        self._ensure_clients()
        object_name = f"{UPLOAD_PREFIX}/{uuid.uuid4()}-{audio_path.name}"
        blob = self.storage_client.bucket(self.config.bucket_name).blob(object_name)
        blob.upload_from_filename(str(audio_path))
        gcs_uri = f"gs://{self.config.bucket_name}/{object_name}"
        logger.info(f"Uploaded {audio_path.name} to {gcs_uri}")

        audio = speech.RecognitionAudio(uri=gcs_uri)
        operation = self.speech_client.long_running_recognize(config=self.recognition_config, audio=audio)
        job_id = operation.operation.name
        logger.info(f"Started long-running recognition {job_id}")
        return job_id

    async def poll_job(self, job_id: str) -> JobStatusReport:
        return await asyncio.to_thread(self._poll, job_id)

    def _get_operation(self, job_id: str):
        self._ensure_clients()
        return self.speech_client.transport.operations_client.get_operation(job_id)

    def _poll(self, job_id: str) -> JobStatusReport:
        operation = self._get_operation(job_id)
        if not operation.done:
            return JobStatusReport(job_id=job_id, status=JobStatus.PENDING)
        if operation.HasField("error"):
            return JobStatusReport(job_id=job_id, status=JobStatus.FAILED,
                                   failure_reason=operation.error.message or f"error code {operation.error.code}")
        return JobStatusReport(job_id=job_id, status=JobStatus.COMPLETED)

    async def fetch_job(self, job_id: str) -> TranscriptionResult:
        result, object_name = await asyncio.to_thread(self._fetch, job_id)
        if object_name is not None:
            await asyncio.to_thread(self._delete_upload, object_name)
        return result

    def _fetch(self, job_id: str) -> Tuple[TranscriptionResult, Optional[str]]:
        operation = self._get_operation(job_id)
        if not operation.done:
            raise RuntimeError(f"Job {job_id} has not completed")
        if operation.HasField("error"):
            raise RuntimeError(f"Job {job_id} failed: {operation.error.message}")

        response = speech.LongRunningRecognizeResponse.deserialize(operation.response.value)
        if self.config.enable_speaker_diarization:
            segments = self._diarized_segments(response.results)
        else:
            segments = self._plain_segments(response.results)

        full_text = " ".join(segment.text for segment in segments)
        logger.info(f"✅ Fetched job {job_id}: {len(segments)} segments")
        return TranscriptionResult(full_text=full_text, segments=segments), self._uploaded_object(operation)

    def _uploaded_object(self, operation) -> Optional[str]:
        """Name of the object this backend uploaded for ``operation``, if any.

        The operation metadata carries the audio URI, so the upload can be
        found by any process that resolves the job.
        """
        if not operation.HasField("metadata"):
            return None
        metadata = speech.LongRunningRecognizeMetadata.deserialize(operation.metadata.value)
        bucket_uri = f"gs://{self.config.bucket_name}/"
        if not metadata.uri.startswith(f"{bucket_uri}{UPLOAD_PREFIX}/"):
            return None
        return metadata.uri[len(bucket_uri):]

    def _delete_upload(self, object_name: str) -> None:
        try:
            self.storage_client.bucket(self.config.bucket_name).blob(object_name).delete()
            logger.debug(f"Deleted uploaded audio {object_name}")
        except gax_exceptions.GoogleAPIError as e:
            logger.warning(f"Could not delete uploaded audio {object_name}: {e}")

    @staticmethod
    def _plain_segments(results) -> List[TranscriptSegment]:
        segments = []
        for recognition_result in results:
            if not recognition_result.alternatives:
                continue
            alternative = recognition_result.alternatives[0]
            text = alternative.transcript.strip()
            if not text:
                continue
            words = alternative.words
            start = _seconds(words[0].start_time) if words else 0.0
            end = _seconds(words[-1].end_time) if words else _seconds(recognition_result.result_end_time)
            segments.append(TranscriptSegment(DEFAULT_SPEAKER, text, start, max(start, end)))
        return segments

    @staticmethod
    def _diarized_segments(results) -> List[TranscriptSegment]:
        """Group consecutive words of the same speaker into segments.

        With diarization enabled the last result carries every word of the
        recording with its speaker tag.
        """
        if not results or not results[-1].alternatives:
            return []
        words = results[-1].alternatives[0].words

        segments = []
        current_tag = None
        current_words: List[str] = []
        start = end = 0.0
        for word in words:
            if word.speaker_tag != current_tag and current_words:
                segments.append(TranscriptSegment(f"Speaker {current_tag}", " ".join(current_words), start, end))
                current_words = []
            if not current_words:
                current_tag = word.speaker_tag
                start = _seconds(word.start_time)
            current_words.append(word.word)
            end = _seconds(word.end_time)
        if current_words:
            segments.append(TranscriptSegment(f"Speaker {current_tag}", " ".join(current_words), start, end))
        return segments

    def classify_error(self, error: BaseException) -> ErrorDisposition:
        if isinstance(error, TRANSIENT_ERRORS):
            return ErrorDisposition.RETRY
        return ErrorDisposition.FATAL
