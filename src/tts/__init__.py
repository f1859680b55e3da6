from .tts import KokoroVoice, Voice, VoiceSpeaker, load_voice, speak_text

__all__ = ["load_voice", "speak_text", "KokoroVoice", "Voice", "VoiceSpeaker"]
