"""Typed per-backend configuration."""

from enum import Enum
from typing import ClassVar, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field


class BackendKind(str, Enum):
    """Interchangeable transcription backends."""
    RECOGNIZER = "recognizer"
    CLOUD_BATCH = "cloud_batch"
    NETWORK_SERVER = "network_server"
    CLOUD_STREAMING = "cloud_streaming"
    ON_DEVICE_MODEL = "on_device_model"


class BackendConfiguration(BaseModel):
    """Options shared by every backend.

    A backend is *configured* when it is enabled and all of its required fields
    are non-empty. Being configured is necessary but not sufficient for being
    usable: adapters add a capability check and a live connectivity check.
    """

    required: ClassVar[Tuple[str, ...]] = ()

    enabled: bool = False
    single_shot_threshold: Optional[float] = Field(default=None, gt=0)
    chunk_duration: Optional[float] = Field(default=None, gt=0)

    def required_fields(self) -> List[str]:
        return list(self.required)

    def missing_fields(self) -> List[str]:
        missing = []
        for name in self.required:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing

    @property
    def is_configured(self) -> bool:
        return self.enabled and not self.missing_fields()


class RecognizerConfig(BackendConfiguration):
    required: ClassVar[Tuple[str, ...]] = ("credentials_path",)

    enabled: bool = True
    credentials_path: str = ""
    language_code: str = "en-US"
    model: str = "latest_long"
    use_enhanced: bool = True
    enable_automatic_punctuation: bool = True


class CloudBatchConfig(BackendConfiguration):
    required: ClassVar[Tuple[str, ...]] = ("credentials_path", "bucket_name")

    credentials_path: str = ""
    bucket_name: str = ""
    language_code: str = "en-US"
    model: str = "latest_long"
    enable_speaker_diarization: bool = False
    max_speakers: int = Field(default=2, ge=1)
    max_duration: float = Field(default=4 * 60 * 60, gt=0)


class NetworkServerConfig(BackendConfiguration):
    required: ClassVar[Tuple[str, ...]] = ("server_url",)

    server_url: str = "http://localhost"
    port: int = Field(default=9000, gt=0)
    language: str = "en"
    request_timeout: float = Field(default=600.0, gt=0)

    @property
    def base_url(self) -> str:
        url = self.server_url.strip().rstrip("/")
        if "://" not in url:
            url = "http://" + url
        parts = urlsplit(url)
        if parts.port is None:
            url = urlunsplit((parts.scheme, f"{parts.hostname}:{self.port}", parts.path, "", ""))
        return url


class CloudStreamingConfig(BackendConfiguration):
    required: ClassVar[Tuple[str, ...]] = ("api_key", "model", "base_url")

    api_key: str = ""
    model: str = "gpt-4o-mini-transcribe"
    base_url: str = "https://api.openai.com/v1"
    max_file_size: int = Field(default=25 * 1024 * 1024, gt=0)
    request_timeout: float = Field(default=600.0, gt=0)


class OnDeviceModelConfig(BackendConfiguration):
    model_config = ConfigDict(protected_namespaces=())

    required: ClassVar[Tuple[str, ...]] = ("model_path",)

    model_path: str = ""
    device: str = "auto"
    compute_type: str = "default"
    language: Optional[str] = None
    beam_size: int = Field(default=5, ge=1)


class BackendConfigurations(BaseModel):
    """Configuration of every backend, keyed by kind."""

    recognizer: RecognizerConfig = Field(default_factory=RecognizerConfig)
    cloud_batch: CloudBatchConfig = Field(default_factory=CloudBatchConfig)
    network_server: NetworkServerConfig = Field(default_factory=NetworkServerConfig)
    cloud_streaming: CloudStreamingConfig = Field(default_factory=CloudStreamingConfig)
    on_device_model: OnDeviceModelConfig = Field(default_factory=OnDeviceModelConfig)

    def for_kind(self, kind: BackendKind) -> BackendConfiguration:
        return getattr(self, BackendKind(kind).value)
