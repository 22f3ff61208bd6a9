"""Pipeline phase modules for the URNA capture session.

Each module encapsulates one discrete phase of a capture/answer cycle:
image capture, voice recording, submission and response playback. The
orchestrator owns the session state and calls into these phases.
"""
