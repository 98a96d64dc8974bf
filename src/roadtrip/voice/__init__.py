"""Voice I/O for I Spy Road Trip.

Speech recognition, text-to-speech, playback and the audio channel that keeps
them from talking over each other.

Usage:
    from roadtrip.voice import AudioChannel, QueueRecognizer, SilenceWatchdog

    watchdog = SilenceWatchdog(timeout=6.0, callback=on_silence)
    channel = AudioChannel(QueueRecognizer(), watchdog=watchdog)
    channel.init()
"""

from .audio_channel import (
    AudioChannel,
    ChannelEvent,
    InterimTranscript,
    ListeningChanged,
    PlaybackChanged,
)
from .playback import AudioPlayer, SimulatedPlayer
from .recognition import (
    DeepgramRecognizer,
    QueueRecognizer,
    RecognitionError,
    RecognitionHandlers,
    SpeechRecognizer,
)
from .silence import SilenceWatchdog
from .synthesis import ElevenLabsSynthesizer, NullSynthesizer, ProxySynthesizer, SpeechSynthesizer

__all__ = [
    "AudioChannel",
    "ChannelEvent",
    "InterimTranscript",
    "ListeningChanged",
    "PlaybackChanged",
    "AudioPlayer",
    "SimulatedPlayer",
    "DeepgramRecognizer",
    "QueueRecognizer",
    "RecognitionError",
    "RecognitionHandlers",
    "SpeechRecognizer",
    "SilenceWatchdog",
    "ElevenLabsSynthesizer",
    "NullSynthesizer",
    "ProxySynthesizer",
    "SpeechSynthesizer",
]
