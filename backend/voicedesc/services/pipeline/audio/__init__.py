from .tts_engine import EdgeTTSSpeech, Speech, narrate_job, split_text

__all__ = ["EdgeTTSSpeech", "Speech", "narrate_job", "split_text"]
