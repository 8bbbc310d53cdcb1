"""
GemFuse Recognition Oracles
============================

Vision-LLM backends behind one injected interface.

Components:
    - base.py:           Abstract oracle + hard call timeout
    - openai_oracle.py:  OpenAI chat completions, strict JSON schema
    - gemini_oracle.py:  Google Gemini (google-genai)
"""

from gemfuse.oracle.base import VisionOracle, call_with_timeout

__all__ = ["VisionOracle", "call_with_timeout"]
