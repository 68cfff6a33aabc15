"""
voiceclone: zero-shot voice cloning on exported ONNX flow-matching stages.

A reference recording and its transcript condition the synthesis of new
text in the same voice.
"""

__version__ = "0.1.0"
