"""URNA capture-session orchestrator.

Turns hold and tap gestures on a single screen into an image-plus-question
submission to an inference backend, and plays the spoken answer back.
"""

__version__ = "0.1.0"
