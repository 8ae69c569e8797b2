"""
Pipeline processors: Implementation modules for each generation stage.

This module contains:
- parse: script -> dialogue turns
- timing: conversation-flow heuristics and analysis
- markup: narration <-> synthesizable markup
- tts: speech synthesis adapters
- mix: timeline assembly
- subtitle: captions and transcripts
"""
