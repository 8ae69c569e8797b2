"""
dialogcast: multi-speaker synthetic podcast dialogues.

Pipeline:
    bracket-tagged script
      ↓
    parse (turns + emotion / pace / explicit breaks)
      ↓
    timing heuristics (conversation state fold, optional OpenAI analysis)
      ↓
    markup (prosody + break tags)
      ↓
    ElevenLabs synthesis (audio + character timestamps)
      ↓
    timeline assembly (sample-accurate PCM, faded gap silence)
      ↓
    SRT / VTT / JSON captions + turn-level transcript
"""

from .config.settings import load_env_file

__all__ = ["load_env_file"]
