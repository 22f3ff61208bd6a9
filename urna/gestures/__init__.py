"""Gesture recognition: pointer events and timers in, logical commands out."""
