"""Summary: Audio recorder interfaces for the session controller.

Importance: Isolates microphone access so the controller runs the same on devices, files and tests.
Alternatives: Bind the controller to a specific audio library.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class RecordedAudio:
    """Summary: Audio captured by one recording."""

    data: bytes
    uri: str | None = None


class AudioRecorder(ABC):
    """Summary: Abstract microphone boundary.

    Importance: The controller asks for permission once and then only starts, stops or cancels.
    Alternatives: Pass raw audio bytes into the controller.
    """

    @abstractmethod
    def has_permission(self) -> bool:
        """Summary: Report whether microphone access is already granted."""

    @abstractmethod
    def request_permission(self) -> bool:
        """Summary: Ask for microphone access and return the outcome."""

    @abstractmethod
    def start(self) -> None:
        """Summary: Begin capturing audio."""

    @abstractmethod
    def stop(self) -> RecordedAudio | None:
        """Summary: Stop capturing and return the audio, or None when nothing was captured."""

    @abstractmethod
    def cancel(self) -> None:
        """Summary: Stop capturing and discard the audio."""


class MemoryAudioRecorder(AudioRecorder):
    """Summary: Recorder that returns preset bytes.

    Importance: Drives controller tests without a microphone.
    Alternatives: Mock the recorder methods individually.
    """

    def __init__(self, data: bytes = b"", permission: bool = True, grant_on_request: bool = True) -> None:
        self._data = data
        self._permission = permission
        self._grant_on_request = grant_on_request
        self.recording = False
        self.permission_requests = 0

    def has_permission(self) -> bool:
        return self._permission

    def request_permission(self) -> bool:
        self.permission_requests += 1
        self._permission = self._grant_on_request
        return self._permission

    def start(self) -> None:
        self.recording = True

    def stop(self) -> RecordedAudio | None:
        self.recording = False
        if not self._data:
            return None
        return RecordedAudio(data=self._data, uri="memory://recording")

    def cancel(self) -> None:
        self.recording = False


class FileAudioRecorder(AudioRecorder):
    """Summary: Recorder that reads a prerecorded clip from disk on stop.

    Importance: Lets the CLI replay audio files through the full voice flow.
    Alternatives: Capture from the system microphone with a sound library.
    """

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        self._started = False

    def has_permission(self) -> bool:
        return self._path.exists()

    def request_permission(self) -> bool:
        return self._path.exists()

    def start(self) -> None:
        self._started = True

    def stop(self) -> RecordedAudio | None:
        if not self._started:
            return None
        self._started = False
        data = self._path.read_bytes()
        if not data:
            return None
        return RecordedAudio(data=data, uri=str(self._path))

    def cancel(self) -> None:
        self._started = False
